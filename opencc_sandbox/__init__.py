"""opencc_sandbox v0.1

OpenCC compiled to WebAssembly, called from Python through wasmtime:
- One engine + compiled module per runtime, built lazily and thread-safely
- One sandbox instance per converter or per one-shot call
- Read-only data directory (configs, dictionaries) mounted at the guest root
- Typed call descriptors; argument buffers always freed, returned strings released
- C++ throws inside the module become SandboxTrap errors, not host crashes
- Optional per-call fuel and wall-clock budgets
- Audit event stream (logging by default) for traps and cleanup failures
"""

from .api import convert, convert_s2t, convert_t2s
from .converter import Converter, open_converter, INVALID_HANDLE
from .config import BridgeConfig, default_config
from .runtime import SandboxRuntime, get_default_runtime, set_default_runtime
from .instance import SandboxInstance, new_instance
from .marshaling import Arg, CallSpec, call
from .result import CallOutcome, CallMetrics, ErrorInfo, Event
from .presets import ConversionPreset, conversion_presets, get_preset, resolve_config_file
from .datafs import DataDirectory, MountSpec
from .audit import AuditSink, AuditSinkSpec, InMemoryAuditSink, LoggingAuditSink, build_audit_sinks
from .wire import config_to_dict, config_from_dict, load_config
from .errors import (
    SandboxError,
    InitializationError,
    FunctionNotFound,
    UnsupportedType,
    InvocationError,
    CallTimeoutError,
    FuelExhaustedError,
    SandboxTrap,
    InvalidConverterError,
    ConversionFailedError,
)

__all__ = [
    "convert",
    "convert_s2t",
    "convert_t2s",
    "Converter",
    "open_converter",
    "INVALID_HANDLE",
    "BridgeConfig",
    "default_config",
    "SandboxRuntime",
    "get_default_runtime",
    "set_default_runtime",
    "SandboxInstance",
    "new_instance",
    "Arg",
    "CallSpec",
    "call",
    "CallOutcome",
    "CallMetrics",
    "ErrorInfo",
    "Event",
    "ConversionPreset",
    "conversion_presets",
    "get_preset",
    "resolve_config_file",
    "DataDirectory",
    "MountSpec",
    "AuditSink",
    "AuditSinkSpec",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "build_audit_sinks",
    "config_to_dict",
    "config_from_dict",
    "load_config",
    "SandboxError",
    "InitializationError",
    "FunctionNotFound",
    "UnsupportedType",
    "InvocationError",
    "CallTimeoutError",
    "FuelExhaustedError",
    "SandboxTrap",
    "InvalidConverterError",
    "ConversionFailedError",
]
