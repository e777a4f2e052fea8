from __future__ import annotations


class UploadError(ValueError):
    """Base class for failures surfaced to the user while ingesting an upload."""


class FormatError(UploadError):
    pass


class ParseError(UploadError):
    pass


class PersistenceReadError(RuntimeError):
    pass
