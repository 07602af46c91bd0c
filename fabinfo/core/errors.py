"""Domain-specific errors for fabinfo."""


class FabinfoError(Exception):
    """Base error for fabinfo."""


class SymbolTableError(FabinfoError):
    """Raised when packaged symbol data is unreadable or invalid."""


class LibraryLoadError(FabinfoError):
    """Raised when the libfabric shared library cannot be loaded."""


class AllocationError(FabinfoError):
    """Raised when a native allocation returns NULL."""


class DiscoveryError(FabinfoError):
    """Raised when a discovery call returns a failure code."""

    def __init__(self, operation: str, code: int, message: str) -> None:
        super().__init__(f"{operation}(): ret={code} ({message})")
        self.operation = operation
        self.code = code
        self.message = message
