"""
Exception hierarchy for the ingestion pipeline.

Per-file problems (UnreadableFileError) are always recovered by the caller.
Stage failures abort only the current operation.
"""


class ContexterError(Exception):
    """Base class for all pipeline errors."""

    pass


class InvalidInputError(ContexterError):
    """Malformed metadata, file list, options or settings."""

    pass


class ComputationError(ContexterError):
    """Building or recalculating the tree failed."""

    pass


class UnreadableFileError(ContexterError):
    """A single file could not be read or decoded."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not read {path}: {reason}")
        self.path = path
        self.reason = reason


class StaleRunError(ContexterError):
    """An ingestion run was superseded by a newer run or by clear()."""

    def __init__(self, run_id: int):
        super().__init__(f"Run {run_id} was superseded; its result was discarded")
        self.run_id = run_id
