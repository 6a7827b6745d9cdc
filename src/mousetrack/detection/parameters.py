"""
Tracking Parameters
Immutable parameter snapshots consumed by the per-frame pipeline
"""

import copy
import numbers
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from ..config.tracking_config import (
    TRACKING_PARAMETERS,
    MORPHOLOGY_STAGES,
    BACKGROUND_PARAMETERS,
)
from ..errors import ConfigurationError
from ..serialization import encode_array, decode_array


class Channel(str, Enum):
    R = 'R'
    G = 'G'
    B = 'B'
    GREY = 'Grey'


class VideoMode(str, Enum):
    RGB = 'RGB'
    THERMAL = 'Thermal'
    GREYSCALE = 'GreyScale'

    @property
    def is_single_channel(self) -> bool:
        return self is not VideoMode.RGB


class MouseIntensity(str, Enum):
    LOW = 'Low'
    HIGH = 'High'


class MorphOperation(str, Enum):
    CLOSE = 'close'
    SIZE_FILTER = 'size_filter'
    OPEN = 'open'


class BackgroundMode(str, Enum):
    MEDIAN = 'Median'
    MEAN = 'Mean'
    MIN = 'Min'
    MAX = 'Max'
    PERCENTILE = 'Percentile'


_ALIASES = {
    'gray': 'grey',
    'prctile': 'percentile',
    'grayscale': 'greyscale',
}

# close -> size filter -> close -> open
STAGE_SEQUENCE = (MorphOperation.CLOSE, MorphOperation.SIZE_FILTER,
                  MorphOperation.CLOSE, MorphOperation.OPEN)


def parse_enum(enum_cls, value, field_name: str):
    """Case-insensitive lookup of an enum member by value or name."""
    if isinstance(value, enum_cls):
        return value
    key = str(value).strip().lower()
    key = _ALIASES.get(key, key)
    for member in enum_cls:
        if key in (member.value.lower(), member.name.lower()):
            return member
    choices = ', '.join(m.value for m in enum_cls)
    raise ConfigurationError(f"{field_name} must be one of {choices}, got {value!r}")


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class MorphologyStage:
    """One stage of the morphological cleanup sequence."""
    name: str
    operation: MorphOperation
    enabled: bool = True
    size: int = 1  # disk radius (px) or minimum area (px) for the size filter

    def __post_init__(self):
        object.__setattr__(self, 'operation', parse_enum(MorphOperation, self.operation, 'operation'))
        if not _is_int(self.size) or self.size <= 0:
            raise ConfigurationError(f"Stage {self.name}: size must be a positive integer, got {self.size!r}")
        object.__setattr__(self, 'size', int(self.size))
        object.__setattr__(self, 'enabled', bool(self.enabled))

    def to_dict(self) -> dict:
        return {'name': self.name, 'operation': self.operation.value,
                'enabled': self.enabled, 'size': self.size}


@dataclass(frozen=True)
class RegionOfInterest:
    """Circle or polygon drawn by the user, rasterised into the inclusion mask."""
    shape: str
    center: Optional[Tuple[float, float]] = None
    radius: Optional[float] = None
    vertices: Optional[Tuple[Tuple[float, float], ...]] = None

    def __post_init__(self):
        shape = str(self.shape).lower()
        object.__setattr__(self, 'shape', shape)
        if shape == 'circle':
            if self.center is None or self.radius is None or self.radius <= 0:
                raise ConfigurationError("Circle region needs a center and a positive radius")
            object.__setattr__(self, 'center', (float(self.center[0]), float(self.center[1])))
            object.__setattr__(self, 'radius', float(self.radius))
        elif shape == 'polygon':
            if self.vertices is None or len(self.vertices) < 3:
                raise ConfigurationError("Polygon region needs at least 3 vertices")
            object.__setattr__(self, 'vertices',
                               tuple((float(x), float(y)) for x, y in self.vertices))
        else:
            raise ConfigurationError(f"Region shape must be 'circle' or 'polygon', got {self.shape!r}")

    def to_mask(self, height: int, width: int) -> np.ndarray:
        """Rasterise the region to a boolean mask of the given frame size."""
        canvas = np.zeros((height, width), dtype=np.uint8)
        if self.shape == 'circle':
            center = (int(round(self.center[0])), int(round(self.center[1])))
            cv2.circle(canvas, center, int(round(self.radius)), 1, -1)
        else:
            points = np.round(np.array(self.vertices)).astype(np.int32)
            cv2.fillPoly(canvas, [points], 1)
        return canvas.astype(bool)

    def to_dict(self) -> dict:
        return {
            'shape': self.shape,
            'center': list(self.center) if self.center is not None else None,
            'radius': self.radius,
            'vertices': [list(v) for v in self.vertices] if self.vertices is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RegionOfInterest':
        vertices = data.get('vertices')
        return cls(
            shape=data.get('shape', 'polygon'),
            center=tuple(data['center']) if data.get('center') is not None else None,
            radius=data.get('radius'),
            vertices=tuple(tuple(v) for v in vertices) if vertices is not None else None,
        )


@dataclass(frozen=True)
class SmoothingSettings:
    """Contour coordinate smoothing."""
    enabled: bool = True
    window_size: int = 10
    method: str = 'gaussian'

    def __post_init__(self):
        if not _is_int(self.window_size) or self.window_size <= 0:
            raise ConfigurationError(f"Smoothing window must be a positive integer, got {self.window_size!r}")
        if self.method not in ('gaussian', 'moving'):
            raise ConfigurationError(f"Smoothing method must be 'gaussian' or 'moving', got {self.method!r}")


@dataclass(frozen=True)
class CalibrationSettings:
    """Linear pixel-to-unit scale. Stored with the results, never applied to them."""
    pixel_length: Optional[float] = None  # real-world length of the reference line
    reference_line: Optional[Tuple[Tuple[float, float], Tuple[float, float]]] = None

    def __post_init__(self):
        if self.pixel_length is not None and (not _is_real(self.pixel_length) or self.pixel_length < 0):
            raise ConfigurationError(f"Calibration length must be a non-negative number, got {self.pixel_length!r}")
        if self.reference_line is not None:
            (x1, y1), (x2, y2) = self.reference_line
            object.__setattr__(self, 'reference_line', ((float(x1), float(y1)), (float(x2), float(y2))))

    def units_per_pixel(self) -> Optional[float]:
        """Scale factor; without a reference line the length is taken as the factor itself."""
        if self.pixel_length is None:
            return None
        if self.reference_line is None:
            return float(self.pixel_length)
        (x1, y1), (x2, y2) = self.reference_line
        line_px = float(np.hypot(x2 - x1, y2 - y1))
        if line_px == 0:
            return None
        return float(self.pixel_length) / line_px


@dataclass(frozen=True)
class BackgroundSpec:
    """How the background image is (or was) estimated."""
    mode: BackgroundMode = BackgroundMode.MEDIAN
    percentile: float = 50.0
    picked_timestamps: Tuple[float, ...] = ()
    frames_num: int = 50

    def __post_init__(self):
        object.__setattr__(self, 'mode', parse_enum(BackgroundMode, self.mode, 'background mode'))
        times = sorted(set(float(t) for t in self.picked_timestamps))
        object.__setattr__(self, 'picked_timestamps', tuple(times))
        self.validate()

    def validate(self) -> 'BackgroundSpec':
        if not _is_real(self.percentile) or not 0 < self.percentile < 100:
            raise ConfigurationError(f"Percentile must be in (0, 100), got {self.percentile!r}")
        if not _is_int(self.frames_num) or self.frames_num <= 0:
            raise ConfigurationError(f"frames_num must be a positive integer, got {self.frames_num!r}")
        if any(t < 0 for t in self.picked_timestamps):
            raise ConfigurationError("Picked timestamps must be non-negative")
        return self

    def add_timestamp(self, timestamp: float) -> 'BackgroundSpec':
        return replace(self, picked_timestamps=self.picked_timestamps + (float(timestamp),))

    def remove_timestamp(self, timestamp: float) -> 'BackgroundSpec':
        return replace(self, picked_timestamps=tuple(t for t in self.picked_timestamps if t != float(timestamp)))

    def clear_timestamps(self) -> 'BackgroundSpec':
        return replace(self, picked_timestamps=())

    def with_auto_timestamps(self, duration: float, frame_rate: float) -> 'BackgroundSpec':
        """Replace the picked times by frames_num evenly spaced times over the clip."""
        last_start = max(float(duration) - 1.0 / float(frame_rate), 0.0) if frame_rate else float(duration)
        times = np.linspace(0.0, last_start, self.frames_num)
        return replace(self, picked_timestamps=tuple(float(t) for t in times))

    def to_dict(self) -> dict:
        return {'mode': self.mode.value, 'percentile': float(self.percentile),
                'picked_timestamps': list(self.picked_timestamps), 'frames_num': self.frames_num}

    @classmethod
    def from_dict(cls, data: dict) -> 'BackgroundSpec':
        return cls(
            mode=data.get('mode', BACKGROUND_PARAMETERS['mode']),
            percentile=data.get('percentile', BACKGROUND_PARAMETERS['percentile']),
            picked_timestamps=tuple(data.get('picked_timestamps', ())),
            frames_num=data.get('frames_num', BACKGROUND_PARAMETERS['frames_num']),
        )


@dataclass(frozen=True, eq=False)
class BackgroundParameters:
    """Background image and its provenance."""
    enabled: bool = False
    image: Optional[np.ndarray] = None
    subtract_main: bool = False
    spec: BackgroundSpec = field(default_factory=BackgroundSpec)

    def __post_init__(self):
        if self.image is not None:
            image = np.asarray(self.image)
            if image.ndim not in (2, 3):
                raise ConfigurationError(f"Background image must be 2D or 3D, got shape {image.shape}")
            if image.dtype != np.uint8:
                if image.size and (np.nanmin(image) < 0 or np.nanmax(image) > 255):
                    raise ConfigurationError("Background image values must lie in [0, 255]")
                image = image.astype(np.uint8)
            image = image.copy()
            image.flags.writeable = False
            object.__setattr__(self, 'image', image)

    @property
    def is_active(self) -> bool:
        return bool(self.enabled) and self.image is not None


@dataclass(frozen=True, eq=False)
class TrackingParameters:
    """Frozen parameter snapshot for one tracking run."""
    channel: Channel = Channel.R
    video_mode: VideoMode = VideoMode.RGB
    mouse_intensity: MouseIntensity = MouseIntensity.LOW
    threshold: int = 80
    reflection_penalty: float = 1.0
    mask: Optional[np.ndarray] = None
    region: Optional[RegionOfInterest] = None
    morphology: Tuple[MorphologyStage, ...] = field(
        default_factory=lambda: tuple(MorphologyStage(**stage) for stage in MORPHOLOGY_STAGES))
    smoothing: SmoothingSettings = field(default_factory=SmoothingSettings)
    background: BackgroundParameters = field(default_factory=BackgroundParameters)
    calibration: CalibrationSettings = field(default_factory=CalibrationSettings)

    def __post_init__(self):
        object.__setattr__(self, 'channel', parse_enum(Channel, self.channel, 'channel'))
        object.__setattr__(self, 'video_mode', parse_enum(VideoMode, self.video_mode, 'video_mode'))
        object.__setattr__(self, 'mouse_intensity',
                           parse_enum(MouseIntensity, self.mouse_intensity, 'mouse_intensity'))
        object.__setattr__(self, 'morphology', tuple(self.morphology))
        if self.mask is not None:
            mask = np.asarray(self.mask).astype(bool)
            mask.flags.writeable = False
            object.__setattr__(self, 'mask', mask)
        self.validate()

    def validate(self) -> 'TrackingParameters':
        """Check every invariant; raises ConfigurationError."""
        if not _is_int(self.threshold) or not 0 <= self.threshold <= 255:
            raise ConfigurationError(f"Threshold must be an integer in [0, 255], got {self.threshold!r}")
        if not _is_real(self.reflection_penalty) or not 1 <= self.reflection_penalty <= 10:
            raise ConfigurationError(
                f"Reflection penalty must be in [1, 10], got {self.reflection_penalty!r}")

        operations = tuple(stage.operation for stage in self.morphology)
        if operations != STAGE_SEQUENCE:
            raise ConfigurationError(
                "Morphology must be close, size_filter, close, open; got "
                + ', '.join(op.value for op in operations))

        if self.mask is not None:
            if self.mask.ndim != 2:
                raise ConfigurationError(f"Mask must be a 2D boolean image, got shape {self.mask.shape}")
            image = self.background.image
            if image is not None and image.shape[:2] != self.mask.shape:
                raise ConfigurationError(
                    f"Mask shape {self.mask.shape} does not match background shape {image.shape[:2]}")
        return self

    # --- Derived views ---

    @property
    def outside_mask(self) -> Optional[np.ndarray]:
        """Complement of the inclusion mask."""
        if self.mask is None:
            return None
        return ~self.mask

    @property
    def size_filter_enabled(self) -> bool:
        return self.morphology[1].enabled

    @property
    def size_filter_min_area(self) -> int:
        return self.morphology[1].size

    def stage(self, name: str) -> MorphologyStage:
        for stage in self.morphology:
            if stage.name == name:
                return stage
        raise KeyError(name)

    def check_frame_shape(self, shape: Tuple[int, ...]):
        """Raise if the mask or background cannot be applied to frames of this shape."""
        height, width = shape[:2]
        if self.mask is not None and self.mask.shape != (height, width):
            raise ConfigurationError(f"Mask shape {self.mask.shape} does not match frame size {(height, width)}")
        image = self.background.image
        if self.background.is_active and image.shape[:2] != (height, width):
            raise ConfigurationError(
                f"Background shape {image.shape[:2]} does not match frame size {(height, width)}")

    # --- Copies ---

    def copy(self) -> 'TrackingParameters':
        """Deep copy, used so concurrent runs never alias state."""
        return copy.deepcopy(self)

    def with_region(self, region: Optional[RegionOfInterest], height: int, width: int) -> 'TrackingParameters':
        """Snapshot with the inclusion mask rasterised from a region (or cleared)."""
        if region is None:
            return replace(self, region=None, mask=None)
        return replace(self, region=region, mask=region.to_mask(height, width))

    def with_background(self, image: Optional[np.ndarray], enabled: bool = True,
                        spec: Optional[BackgroundSpec] = None) -> 'TrackingParameters':
        background = replace(self.background, image=image, enabled=enabled and image is not None,
                             spec=spec if spec is not None else self.background.spec)
        return replace(self, background=background)

    # --- Dictionary round trip ---

    @classmethod
    def from_config(cls, config: Dict, frame_size: Optional[Tuple[int, int]] = None) -> 'TrackingParameters':
        """Build a snapshot from a configuration dictionary (see tracking_config)."""
        stages = config.get('morphology', MORPHOLOGY_STAGES)
        morphology = tuple(
            stage if isinstance(stage, MorphologyStage) else MorphologyStage(**stage)
            for stage in stages
        )

        smoothing = SmoothingSettings(
            enabled=bool(config.get('smooth_contour_enable', TRACKING_PARAMETERS['smooth_contour_enable'])),
            window_size=config.get('smooth_contour_window', TRACKING_PARAMETERS['smooth_contour_window']),
            method=config.get('smooth_contour_method', TRACKING_PARAMETERS['smooth_contour_method']),
        )

        bg_config = config.get('background', {}) or {}
        image = bg_config.get('image')
        if isinstance(image, dict):
            image = decode_array(image)
        background = BackgroundParameters(
            enabled=bool(bg_config.get('enable', BACKGROUND_PARAMETERS['enable'])),
            image=image,
            subtract_main=bool(bg_config.get('subtract_main', BACKGROUND_PARAMETERS['subtract_main'])),
            spec=BackgroundSpec.from_dict(bg_config),
        )

        cal_config = config.get('calibration', {}) or {}
        line = cal_config.get('reference_line')
        calibration = CalibrationSettings(
            pixel_length=cal_config.get('pixel_length'),
            reference_line=tuple(tuple(p) for p in line) if line is not None else None,
        )

        region = config.get('region')
        if isinstance(region, dict):
            region = RegionOfInterest.from_dict(region)

        mask = config.get('mask')
        if isinstance(mask, dict):
            mask = decode_array(mask)
        if mask is None and region is not None and frame_size is not None:
            mask = region.to_mask(*frame_size)

        return cls(
            channel=config.get('channel', TRACKING_PARAMETERS['channel']),
            video_mode=config.get('video_mode', TRACKING_PARAMETERS['video_mode']),
            mouse_intensity=config.get('mouse_intensity', TRACKING_PARAMETERS['mouse_intensity']),
            threshold=config.get('threshold', TRACKING_PARAMETERS['threshold']),
            reflection_penalty=config.get('reflection_penalty', TRACKING_PARAMETERS['reflection_penalty']),
            mask=mask,
            region=region,
            morphology=morphology,
            smoothing=smoothing,
            background=background,
            calibration=calibration,
        )

    def to_dict(self) -> dict:
        """JSON-friendly dictionary; from_config(to_dict()) rebuilds the snapshot."""
        background = {
            'enable': self.background.enabled,
            'image': encode_array(self.background.image),
            'subtract_main': self.background.subtract_main,
        }
        background.update(self.background.spec.to_dict())
        line = self.calibration.reference_line
        return {
            'channel': self.channel.value,
            'video_mode': self.video_mode.value,
            'mouse_intensity': self.mouse_intensity.value,
            'threshold': int(self.threshold),
            'reflection_penalty': float(self.reflection_penalty),
            'mask': encode_array(self.mask),
            'region': self.region.to_dict() if self.region is not None else None,
            'morphology': [stage.to_dict() for stage in self.morphology],
            'smooth_contour_enable': self.smoothing.enabled,
            'smooth_contour_window': self.smoothing.window_size,
            'smooth_contour_method': self.smoothing.method,
            'background': background,
            'calibration': {
                'pixel_length': self.calibration.pixel_length,
                'reference_line': [list(p) for p in line] if line is not None else None,
            },
        }

    from_dict = from_config
