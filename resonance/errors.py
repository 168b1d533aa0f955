"""
Error taxonomy for the universe store.

Every operation of the store either succeeds or raises one of these.
Callers (the HTTP adapter, tests) map them to responses; nothing in the
core retries on its own.
"""


class ResonanceError(Exception):
    """Base exception for all store errors."""
    pass


class ValidationError(ResonanceError):
    """Raised when a request is malformed. Nothing has been written."""
    pass


class DimensionMismatchError(ValidationError):
    """Raised when a vector does not match the universe's pinned dimensionality."""

    def __init__(self, universe: str, expected: int, actual: int):
        self.universe = universe
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Universe '{universe}' holds {expected}-dimensional vectors, "
            f"got {actual} dimensions"
        )


class ProviderError(ResonanceError):
    """Raised when the embedding provider fails. The operation is aborted."""
    pass


class NotFoundError(ResonanceError):
    """Raised when a universe that was never created is deleted."""
    pass


class IndexCorruptError(ResonanceError):
    """Raised when a universe's on-disk state cannot be opened or read."""
    pass


class InternalError(ResonanceError):
    """Unexpected failure, reported without internals."""
    pass
