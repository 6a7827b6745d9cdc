"""
Batch Scheduler
Tracks several recordings in parallel, each one isolated from the others
"""

import logging
import threading
import time
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import cv2
from threadpoolctl import threadpool_limits

from ..config.tracking_config import BATCH_PROCESSING
from ..detection.channels import detect_video_mode
from ..detection.parameters import TrackingParameters, VideoMode
from ..errors import SourceReadFailure
from ..pipeline import run_full_pipeline
from ..records import BatchEntry
from ..video.frame_source import FrameSource, open_frame_source
from .tracking_log import describe_source, has_results, load_log, persist_results

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'


class EntryState(Enum):
    PENDING = 'pending'
    LOADING = 'loading'
    TRACKING = 'tracking'
    PERSISTING = 'persisting'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class EntryResult:
    """Outcome of one batch entry."""
    basename: str
    video_mode: VideoMode
    source_path: str
    log_path: str
    state: EntryState
    frame_count: int = 0
    error: Optional[str] = None
    elapsed: float = 0.0
    history: List[EntryState] = field(default_factory=list)  # every state the entry went through

    @property
    def succeeded(self) -> bool:
        return self.state is EntryState.DONE


_THREAD_LIMITS = None


def _worker_init():
    """Process pool initializer.

    Entries already run in parallel, so each worker process keeps OpenCV and
    the NumPy/BLAS pools to a single thread.
    """
    global _THREAD_LIMITS
    cv2.setNumThreads(1)
    _THREAD_LIMITS = threadpool_limits(limits=1)


def prepare_entry(path: str, params: TrackingParameters,
                  source_factory: Callable[[str], FrameSource] = open_frame_source) -> BatchEntry:
    """Describe a recording and freeze the parameters it will be tracked with.

    The first frame decides between RGB and GreyScale and sizes the inclusion
    mask when only a region was given.
    """
    description = describe_source(path)
    with source_factory(description.source_path) as source:
        if not source.has_next_frame():
            raise SourceReadFailure(f"{path} contains no frames")
        frame = source.read_next_frame()

    video_mode = detect_video_mode(frame, description.video_mode, description.source_path)
    snapshot = replace(params, video_mode=video_mode)
    if snapshot.region is not None and snapshot.mask is None:
        snapshot = snapshot.with_region(snapshot.region, frame.shape[0], frame.shape[1])
    snapshot.check_frame_shape(frame.shape)

    if has_results(load_log(description.log_path), video_mode):
        logger.warning(f"{description.basename} was already tracked in {video_mode.value} mode, "
                       f"results will be replaced")

    return BatchEntry(
        source_path=description.source_path,
        log_path=description.log_path,
        video_mode=video_mode,
        basename=description.basename,
        parameters=snapshot.copy(),
    )


def process_entry(entry: BatchEntry,
                  source_factory: Callable[[str], FrameSource] = open_frame_source,
                  cancel_event: Optional[threading.Event] = None,
                  on_state: Optional[Callable[[BatchEntry, EntryState], None]] = None) -> EntryResult:
    """Track one entry and merge its results into its log.

    Never raises: any failure is logged and reported as a FAILED result, and
    the log is only written once tracking has completed.
    """
    def notify(state: EntryState):
        result.history.append(state)
        if on_state is not None:
            on_state(entry, state)

    result = EntryResult(entry.basename, entry.video_mode, entry.source_path, entry.log_path,
                         EntryState.LOADING)
    start = time.time()
    logger.info(f"{entry.basename} starting...")
    try:
        notify(EntryState.LOADING)
        params = entry.parameters.copy()
        notify(EntryState.TRACKING)
        records = run_full_pipeline(replace(entry, parameters=params), source_factory, cancel_event)

        notify(EntryState.PERSISTING)
        persist_results(entry.log_path, entry.source_path, entry.video_mode, params, records)

        result.frame_count = len(records)
        result.state = EntryState.DONE
        logger.info(f"{entry.basename} finished! ({len(records)} frames)")
    except Exception as e:
        result.state = EntryState.FAILED
        result.error = f"{type(e).__name__}: {e}"
        logger.error(f"{entry.basename} failed... {result.error}")
    result.elapsed = time.time() - start
    notify(result.state)
    return result


class BatchScheduler:
    """Queue of prepared recordings, processed concurrently on ``run``.

    With a thread pool ``entry_states`` follows every entry live through
    Loading, Tracking and Persisting. Worker processes cannot call back into
    the scheduler, so with a process pool ``entry_states`` only moves from
    Loading to Done or Failed; the full sequence is in ``EntryResult.history``.
    """

    def __init__(self, max_workers: Optional[int] = None, use_processes: Optional[bool] = None,
                 source_factory: Callable[[str], FrameSource] = open_frame_source):
        """Initialize an empty batch.

        Args:
            max_workers: Parallel entries (None: one per CPU)
            use_processes: Process pool (True) or thread pool (False)
            source_factory: Opens a frame source from a path; must be picklable with processes
        """
        self.max_workers = max_workers if max_workers is not None else BATCH_PROCESSING['max_workers']
        self.use_processes = use_processes if use_processes is not None else BATCH_PROCESSING['use_processes']
        self.source_factory = source_factory
        self.logger = logging.getLogger(__name__)

        self.entries: List[BatchEntry] = []
        self.state = SchedulerState.IDLE
        self.entry_states: Dict[Tuple[str, str], EntryState] = {}

        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._futures = []

    # --- Queue management ---

    def _check_idle(self):
        if self.state is SchedulerState.RUNNING:
            raise RuntimeError("The batch cannot be changed while it is running")

    def add(self, entry: BatchEntry) -> bool:
        """Queue an entry; returns False if the same file and mode are already queued."""
        self._check_idle()
        entry.parameters.validate()
        if any(queued.key == entry.key for queued in self.entries):
            self.logger.info(f"{entry.basename} ({entry.video_mode.value}) is already in the batch")
            return False

        self.entries.append(replace(entry, parameters=entry.parameters.copy()))
        self.entries.sort(key=lambda queued: queued.basename)
        self.entry_states[entry.key] = EntryState.PENDING
        return True

    def add_file(self, path: str, params: TrackingParameters) -> bool:
        """Prepare a recording and queue it."""
        return self.add(prepare_entry(path, params, self.source_factory))

    def remove(self, basename: str) -> int:
        """Drop every queued entry of a recording; returns how many were removed."""
        self._check_idle()
        kept = [entry for entry in self.entries if entry.basename != basename]
        removed = len(self.entries) - len(kept)
        for entry in self.entries:
            if entry.basename == basename:
                self.entry_states.pop(entry.key, None)
        self.entries = kept
        return removed

    def __len__(self):
        return len(self.entries)

    # --- Running ---

    def _set_entry_state(self, entry: BatchEntry, state: EntryState):
        with self._lock:
            self.entry_states[entry.key] = state

    def _make_executor(self, workers: Optional[int]):
        if self.use_processes:
            return ProcessPoolExecutor(max_workers=workers, initializer=_worker_init)
        return ThreadPoolExecutor(max_workers=workers)

    def _submit(self, executor, entry: BatchEntry):
        if self.use_processes:
            # Threading primitives do not cross process boundaries
            return executor.submit(process_entry, entry, self.source_factory)
        return executor.submit(process_entry, entry, self.source_factory,
                               self._cancel_event, self._set_entry_state)

    def run(self) -> List[EntryResult]:
        """Process every queued entry; results come back in queue order.

        The queue is emptied afterwards, whatever the outcome of each entry.
        """
        self._check_idle()
        entries = list(self.entries)
        if not entries:
            return []

        self.state = SchedulerState.RUNNING
        self._cancel_event.clear()
        results: List[Optional[EntryResult]] = [None] * len(entries)
        workers = self.max_workers
        if workers is not None:
            workers = max(1, min(int(workers), len(entries)))

        self.logger.info(f"Processing {len(entries)} entries")
        start = time.time()
        try:
            with self._make_executor(workers) as executor:
                futures = {}
                for index, entry in enumerate(entries):
                    self._set_entry_state(entry, EntryState.LOADING)
                    futures[self._submit(executor, entry)] = index
                self._futures = list(futures)

                for future in as_completed(futures):
                    index = futures[future]
                    entry = entries[index]
                    if future.cancelled():
                        result = EntryResult(entry.basename, entry.video_mode, entry.source_path,
                                             entry.log_path, EntryState.FAILED, error='cancelled')
                        self.logger.error(f"{entry.basename} failed... cancelled")
                    else:
                        result = future.result()
                    self._set_entry_state(entry, result.state)
                    results[index] = result
        finally:
            self._futures = []
            self.entries = []
            self.state = SchedulerState.IDLE

        done = sum(1 for result in results if result.succeeded)
        self.logger.info(f"Batch finished in {time.time() - start:.1f}s: "
                         f"{done} done, {len(results) - done} failed")
        return results

    def cancel(self):
        """Best effort: pending entries are dropped, thread workers stop between frames."""
        self._cancel_event.set()
        for future in list(self._futures):
            future.cancel()
