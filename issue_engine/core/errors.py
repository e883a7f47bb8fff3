"""
Errors
======
Fatal error taxonomy for an analysis run.

Recoverable conditions (malformed records, a single rule raising) are never
raised past their layer; they are counted and reported as diagnostics.
Only the classes below abort a run.
"""


class AnalysisError(Exception):
    """Base class for errors that abort an analysis run."""


class MissingInputError(AnalysisError):
    """The event batch (or the whole features directory) does not exist."""


class OutputWriteError(AnalysisError):
    """The report destination cannot be written."""
