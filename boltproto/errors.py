"""Errors raised while packing and unpacking PackStream data."""


class PackstreamError(Exception):
    """Base class for all PackStream errors."""


class PackOverflowError(PackstreamError, OverflowError):
    """A value is too large to be represented in PackStream."""


class PackIOError(PackstreamError):
    """The buffer ended before the value being read was complete."""

    def __init__(self, message: str = "IO error") -> None:
        super().__init__(message)


class UnpackError(PackstreamError):
    """The buffer holds data that cannot be unpacked."""