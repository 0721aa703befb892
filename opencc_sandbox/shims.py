"""Host functions the module imports from ``env``.

The module is built without C++ unwinding support, but its runtime still
references the exception ABI. These shims satisfy those imports; a throw
becomes a ``SandboxTrap`` that aborts only the current call.
"""
from __future__ import annotations
from typing import Any, Optional

import wasmtime

from .audit import AuditStream
from .errors import SandboxTrap
from .instance import active_instance

ENV = "env"

HOST_IMPORTS = (
    "__cxa_allocate_exception",
    "__cxa_throw",
    "__cxa_free_exception",
    "__gxx_personality_v0",
    "__cxa_begin_catch",
    "__cxa_end_catch",
)

_I32 = wasmtime.ValType.i32()
_I64 = wasmtime.ValType.i64()

def _export(caller: wasmtime.Caller, name: str) -> Any:
    return caller.get(name)

def read_diagnostic(caller: wasmtime.Caller, ptr: int, limit: int) -> str:
    """Best-effort message at ``ptr``: stops at NUL or ``limit`` bytes, printable ASCII only."""
    mem = _export(caller, "memory")
    if not isinstance(mem, wasmtime.Memory) or ptr <= 0:
        return ""
    size = mem.data_len(caller)
    if ptr >= size:
        return ""
    raw = mem.read(caller, ptr, min(ptr + limit, size))
    nul = raw.find(0)
    if nul >= 0:
        raw = raw[:nul]
    return "".join(chr(b) for b in raw if 32 <= b <= 126)

def register_host_imports(linker: wasmtime.Linker, *, audit: AuditStream, trap_message_limit: int = 256) -> None:
    def allocate_exception(caller: wasmtime.Caller, size: int) -> int:
        malloc = _export(caller, "malloc")
        if not isinstance(malloc, wasmtime.Func):
            raise SandboxTrap("module does not export malloc", export="__cxa_allocate_exception")
        return malloc(caller, size)

    def throw(caller: wasmtime.Caller, exc_ptr: int, tinfo: int, dest: int) -> None:
        ptr = exc_ptr & 0xFFFFFFFF
        diagnostic = read_diagnostic(caller, ptr, trap_message_limit)
        target = active_instance()
        export: Optional[str] = target.current_export if target is not None else None
        msg = "module raised an unrecoverable error"
        if diagnostic:
            msg = f"{msg}: {diagnostic}"
        trap = SandboxTrap(msg, export=export, diagnostic=diagnostic)
        if target is not None:
            target.pending_trap = trap
        audit.emit("trap", export=export, ptr=ptr, tinfo=tinfo & 0xFFFFFFFF, diagnostic=diagnostic)
        raise trap

    def free_exception(caller: wasmtime.Caller, ptr: int) -> None:
        free = _export(caller, "free")
        if not isinstance(free, wasmtime.Func):
            audit.emit("free_exception_failed", ptr=ptr & 0xFFFFFFFF, error="module does not export free")
            return
        try:
            free(caller, ptr)
        except (wasmtime.Trap, wasmtime.WasmtimeError) as e:
            audit.emit("free_exception_failed", ptr=ptr & 0xFFFFFFFF, error=str(e))

    def personality(caller: wasmtime.Caller, version: int, actions: int, exc_class: int, exc_obj: int, context: int) -> int:
        # no handler ever matches
        return 0

    def begin_catch(caller: wasmtime.Caller, exc_ptr: int) -> int:
        return exc_ptr

    def end_catch(caller: wasmtime.Caller) -> None:
        return None

    shims = (
        ("__cxa_allocate_exception", wasmtime.FuncType([_I32], [_I32]), allocate_exception),
        ("__cxa_throw", wasmtime.FuncType([_I32, _I32, _I32], []), throw),
        ("__cxa_free_exception", wasmtime.FuncType([_I32], []), free_exception),
        ("__gxx_personality_v0", wasmtime.FuncType([_I32, _I32, _I64, _I32, _I32], [_I32]), personality),
        ("__cxa_begin_catch", wasmtime.FuncType([_I32], [_I32]), begin_catch),
        ("__cxa_end_catch", wasmtime.FuncType([], []), end_catch),
    )
    for name, ty, fn in shims:
        linker.define_func(ENV, name, ty, fn, access_caller=True)
