"""
Command line entry point
Batch tracking of recordings and background estimation
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

import numpy as np

from .background import estimate_auto_background, estimate_background
from .batch import BatchScheduler, describe_source
from .config.tracking_config import BACKGROUND_PARAMETERS, LOGGING_FORMAT
from .detection.parameters import BackgroundSpec, MouseIntensity, TrackingParameters, VideoMode
from .errors import MouseTrackError
from .video import open_frame_source

logger = logging.getLogger(__name__)


def _load_config(path: Optional[str]) -> dict:
    if path is None:
        return {}
    with open(path, 'r') as f:
        return json.load(f)


def _build_parameters(args) -> TrackingParameters:
    config = _load_config(args.config)
    for key in ('channel', 'mouse_intensity', 'threshold', 'reflection_penalty'):
        value = getattr(args, key)
        if value is not None:
            config[key] = value
    params = TrackingParameters.from_config(config)
    if args.background is not None:
        params = params.with_background(np.load(args.background))
    return params


def run_track(args) -> int:
    params = _build_parameters(args)
    explicit_intensity = args.mouse_intensity is not None or 'mouse_intensity' in _load_config(args.config)

    scheduler = BatchScheduler(max_workers=args.workers, use_processes=not args.threads)
    skipped = []
    for path in args.files:
        file_params = params
        if describe_source(path).video_mode is VideoMode.THERMAL and not explicit_intensity:
            # Thermal recordings show the animal warmer than the floor
            file_params = replace(params, mouse_intensity=MouseIntensity.HIGH)
        try:
            scheduler.add_file(path, file_params)
        except MouseTrackError as e:
            logger.error(f"Skipping {path}: {e}")
            skipped.append(path)

    results = scheduler.run()
    failed = [result for result in results if not result.succeeded]
    for result in failed:
        logger.error(f"{result.basename} ({result.video_mode.value}): {result.error}")
    return 1 if failed or skipped or not results else 0


def run_background(args) -> int:
    spec = BackgroundSpec(
        mode=args.mode,
        percentile=args.percentile,
        picked_timestamps=tuple(args.times or ()),
        frames_num=args.frames,
    )
    with open_frame_source(args.file) as source:
        if spec.picked_timestamps:
            image = estimate_background(spec, source, args.workers)
        else:
            spec, image = estimate_auto_background(spec, source, args.workers)

    np.save(args.output, image)
    logger.info(f"Background saved to {args.output} ({spec.mode.value}, {len(spec.picked_timestamps)} frames)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mousetrack',
        description="Single animal silhouette tracking in video recordings",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('--verbose', '-v', action='store_true', help="Debug logging")
    commands = parser.add_subparsers(dest='command', required=True)

    track = commands.add_parser('track', help="Track a batch of recordings")
    track.add_argument('files', nargs='+')
    track.add_argument('--config', '-c', default=None, help="JSON file with tracking parameters")
    track.add_argument('--background', '-b', default=None, help="Background image (.npy)")
    track.add_argument('--channel', default=None, choices=['R', 'G', 'B', 'Grey'])
    track.add_argument('--intensity', dest='mouse_intensity', default=None, choices=['Low', 'High'])
    track.add_argument('--threshold', type=int, default=None)
    track.add_argument('--reflection-penalty', dest='reflection_penalty', type=float, default=None)
    track.add_argument('--workers', '-j', type=int, default=None)
    track.add_argument('--threads', action='store_true', help="Use threads instead of processes")
    track.set_defaults(handler=run_track)

    background = commands.add_parser('background', help="Estimate a background image")
    background.add_argument('file')
    background.add_argument('--output', '-o', required=True)
    background.add_argument('--mode', default=BACKGROUND_PARAMETERS['mode'],
                            choices=['Median', 'Mean', 'Min', 'Max', 'Percentile'])
    background.add_argument('--percentile', type=float, default=BACKGROUND_PARAMETERS['percentile'])
    background.add_argument('--frames', type=int, default=BACKGROUND_PARAMETERS['frames_num'])
    background.add_argument('--times', type=float, nargs='*', default=None,
                            help="Sample times (s); evenly spaced frames when omitted")
    background.add_argument('--workers', '-j', type=int, default=BACKGROUND_PARAMETERS['sampling_workers'])
    background.set_defaults(handler=run_background)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOGGING_FORMAT,
    )
    try:
        return args.handler(args)
    except MouseTrackError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
