# src/mousetrack/batch/__init__.py
"""
Batch module for parallel tracking runs and their logs
"""

from .scheduler import (
    BatchScheduler, EntryResult, EntryState, SchedulerState, prepare_entry, process_entry,
)
from .tracking_log import describe_source, load_log, save_log, merge_results, persist_results

__all__ = ['BatchScheduler', 'EntryResult', 'EntryState', 'SchedulerState', 'prepare_entry',
           'process_entry', 'describe_source', 'load_log', 'save_log', 'merge_results',
           'persist_results']
