"""Exceptions raised by the sync orchestrator.

Backend failures during a run are reported as progress events, never raised;
these exceptions cover misuse of the step API and unusable checkpoints.
"""


class SyncError(Exception):
    """Base exception for sync orchestration."""
    pass


class NoActiveRunError(SyncError):
    """A step was requested while no run is loaded."""
    pass


class NoWorkError(SyncError):
    """A step was requested while the queue is empty and no item is current."""
    pass


class CheckpointSchemaError(SyncError):
    """A stored checkpoint does not match the current run-state schema."""
    pass
