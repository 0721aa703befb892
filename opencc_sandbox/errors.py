from __future__ import annotations
from typing import Optional


class SandboxError(Exception):
    """Base bridge error with the optional export it happened in."""
    def __init__(self, message: str, *, export: str | None = None):
        super().__init__(message)
        self.export = export

class InitializationError(SandboxError):
    """Raised when the engine, host imports, module or instance cannot be set up."""

class FunctionNotFound(SandboxError):
    """Raised when the module does not export the requested function."""

class UnsupportedType(SandboxError, TypeError):
    """Raised for an argument or result kind the marshaler does not handle."""

class InvocationError(SandboxError):
    """Raised when a sandbox call fails; ``cause`` holds the runtime error."""
    def __init__(self, message: str, *, export: str | None = None, cause: Optional[BaseException] = None):
        super().__init__(message, export=export)
        self.cause = cause

    @property
    def trap(self) -> Optional["SandboxTrap"]:
        return self.cause if isinstance(self.cause, SandboxTrap) else None

class CallTimeoutError(InvocationError):
    """Raised when a call runs past its epoch deadline."""

class FuelExhaustedError(InvocationError):
    """Raised when a call consumes its whole fuel budget."""

class SandboxTrap(SandboxError):
    """Abnormal termination signalled from inside the module."""
    def __init__(self, message: str, *, export: str | None = None, diagnostic: str = ""):
        super().__init__(message, export=export)
        self.diagnostic = diagnostic

class InvalidConverterError(SandboxError):
    """Raised when a converter cannot be opened or is used while not open."""

class ConversionFailedError(SandboxError):
    """Raised when the module returns no output for non-empty input."""
