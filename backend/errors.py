"""Error kinds raised by the spatial query core.

Every error here is recoverable: geometric and traversal failures go back to
the immediate caller, the HTTP layer maps them to status codes.
"""

from typing import Optional


class SpatialCoreError(Exception):
    """Base class for all errors raised by the spatial query core."""


class InvalidInputError(SpatialCoreError, ValueError):
    """Malformed view matrix, degenerate region, out-of-range coordinates..."""


class UnsupportedVersionError(SpatialCoreError):
    """A persisted encoding is newer than supported or too old to migrate."""

    def __init__(self, found, supported):
        self.found = found
        self.supported = tuple(supported)
        super().__init__(
            f"Invalid version. We only support {', '.join(map(str, self.supported))}, "
            f"but found {found}."
        )


class LoadFailureError(SpatialCoreError):
    """The loader could not produce a dataset for a storage address."""

    def __init__(self, address: str, reason: Optional[str] = None):
        self.address = address
        message = f"Could not load dataset from {address!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MalformedAddressError(SpatialCoreError, ValueError):
    """A dataset key cannot be turned into a storage address."""
