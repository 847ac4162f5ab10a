from __future__ import annotations


class SlicerError(Exception):
    """Base class for every failure the core reports to its callers."""


class InvalidInputError(SlicerError, ValueError):
    pass


class FileAccessError(SlicerError, OSError):
    pass


class NotFoundError(SlicerError, LookupError):
    pass


class ExternalToolError(SlicerError, RuntimeError):
    """The external encoder could not be launched or exited nonzero."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.returncode = returncode
