"""Typed calls across the host/sandbox boundary.

Every export the bridge uses has a descriptor (``CallSpec``) saying how
its arguments are passed and how its result is read back. ``call`` owns
the buffers it allocates for string arguments and frees all of them
before returning, whatever happened in between.

Argument buffers are freed one per string argument. That is only correct
for exports that take ownership of nothing and never reallocate their
inputs, which holds for every descriptor below; audit a new export before
adding it here.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple
import time

from .errors import InvocationError, SandboxError, UnsupportedType
from .instance import FREE, SandboxInstance, as_i32
from .result import CallMetrics, CallOutcome, ErrorInfo

ARG_KINDS = ("str", "u32", "i32")
RESULT_KINDS = ("str", "u32", "i32", "none")
_INT_RANGES = {"u32": (0, 0xFFFFFFFF), "i32": (-(1 << 31), (1 << 31) - 1)}

# Release export for strings the converter hands back
CONVERT_FREE = "opencc_convert_free"

@dataclass(frozen=True)
class Arg:
    kind: str
    value: Any

    @classmethod
    def string(cls, value: str) -> "Arg":
        return cls("str", value)

    @classmethod
    def u32(cls, value: int) -> "Arg":
        return cls("u32", value)

    @classmethod
    def i32(cls, value: int) -> "Arg":
        return cls("i32", value)

@dataclass(frozen=True)
class CallSpec:
    export: str
    args: Tuple[Arg, ...] = ()
    result: str = "none"
    # export that frees a returned string; None when the module keeps ownership
    release: Optional[str] = CONVERT_FREE

def opencc_open(config_file: str) -> CallSpec:
    return CallSpec("opencc_open", (Arg.string(config_file),), "u32")

def opencc_close(handle: int) -> CallSpec:
    return CallSpec("opencc_close", (Arg.u32(handle),), "i32")

def opencc_convert(handle: int, text: str) -> CallSpec:
    return CallSpec("opencc_convert", (Arg.u32(handle), Arg.string(text)), "str")

def opencc_s2t(text: str) -> CallSpec:
    return CallSpec("opencc_s2t", (Arg.string(text),), "str")

def opencc_t2s(text: str) -> CallSpec:
    return CallSpec("opencc_t2s", (Arg.string(text),), "str")

def opencc_error() -> CallSpec:
    # static buffer inside the module, never freed by the host
    return CallSpec("opencc_error", (), "str", release=None)


def check_spec(spec: CallSpec) -> None:
    for i, a in enumerate(spec.args):
        if a.kind not in ARG_KINDS:
            raise UnsupportedType(f"unsupported argument kind {a.kind!r} (arg {i})", export=spec.export)
        if a.kind == "str":
            if not isinstance(a.value, str):
                raise UnsupportedType(f"arg {i} must be str, got {type(a.value).__name__}", export=spec.export)
        elif isinstance(a.value, bool) or not isinstance(a.value, int):
            raise UnsupportedType(f"arg {i} must be int, got {type(a.value).__name__}", export=spec.export)
        else:
            lo, hi = _INT_RANGES[a.kind]
            if not lo <= a.value <= hi:
                raise UnsupportedType(f"arg {i} out of {a.kind} range: {a.value}", export=spec.export)
    if spec.result not in RESULT_KINDS:
        raise UnsupportedType(f"unsupported result kind {spec.result!r}", export=spec.export)

def put_string(instance: SandboxInstance, text: str) -> Tuple[int, int]:
    """Copy ``text`` into a fresh NUL-terminated sandbox buffer; returns (ptr, size)."""
    data = text.encode("utf-8") + b"\0"
    ptr = instance.malloc(len(data))
    if ptr == 0:
        raise InvocationError(f"malloc({len(data)}) returned NULL", export="malloc")
    try:
        instance.write(ptr, data)
    except SandboxError:
        instance.free(ptr)
        raise
    return ptr, len(data)

def _release(instance: SandboxInstance, export: str, ptr: int, outcome: CallOutcome) -> None:
    try:
        if export == FREE:
            instance.free(ptr)
        else:
            instance.invoke(export, as_i32(ptr))
    except SandboxError as e:
        outcome.suppressed.append(ErrorInfo.from_exc("release", e, export=export))
        instance.runtime.audit.emit("release_failed", export=export, ptr=ptr, error=str(e))

def _decode(instance: SandboxInstance, spec: CallSpec, raw: Any, outcome: CallOutcome) -> Any:
    if spec.result == "none":
        return None
    if raw is None:
        raise InvocationError(f"{spec.export} returned no value for result kind {spec.result}", export=spec.export)
    if spec.result == "u32":
        return int(raw) & 0xFFFFFFFF
    if spec.result == "i32":
        return as_i32(int(raw))
    ptr = int(raw) & 0xFFFFFFFF
    if ptr == 0:
        return ""
    try:
        data = instance.read_cstring(ptr)
    finally:
        if spec.release:
            _release(instance, spec.release, ptr, outcome)
    outcome.metrics.bytes_out += len(data)
    return data.decode("utf-8", errors="replace")

def call(instance: SandboxInstance, spec: CallSpec) -> CallOutcome:
    """Run one typed call.

    ``UnsupportedType`` is raised straight away, before anything is
    allocated. Every other failure is returned in ``CallOutcome.error``;
    failures while freeing buffers land in ``CallOutcome.suppressed``.
    """
    check_spec(spec)
    t0 = time.perf_counter()
    outcome = CallOutcome(ok=False, metrics=CallMetrics())
    owned: List[int] = []
    try:
        params: List[int] = []
        for a in spec.args:
            if a.kind == "str":
                ptr, size = put_string(instance, a.value)
                owned.append(ptr)
                outcome.metrics.allocations += 1
                outcome.metrics.bytes_in += size
                params.append(as_i32(ptr))
            else:
                params.append(as_i32(a.value))
        raw = instance.invoke(spec.export, *params)
        outcome.value = _decode(instance, spec, raw, outcome)
        outcome.ok = True
    except SandboxError as e:
        outcome.error = e
    finally:
        for ptr in owned:
            _release(instance, FREE, ptr, outcome)
        outcome.metrics.wall_ms = int((time.perf_counter() - t0) * 1000)
    return outcome
