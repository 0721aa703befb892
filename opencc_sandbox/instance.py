from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Iterator, Optional, TYPE_CHECKING
import threading

import wasmtime

from .datafs import mount_from_config
from .errors import (
    CallTimeoutError,
    FuelExhaustedError,
    FunctionNotFound,
    InitializationError,
    InvocationError,
    SandboxError,
    SandboxTrap,
)

if TYPE_CHECKING:
    from .runtime import SandboxRuntime

MALLOC = "malloc"
FREE = "free"
REACTOR_INIT = "_initialize"

_supervision = threading.local()

def active_instance() -> Optional["SandboxInstance"]:
    """Instance whose call is running on this thread, if any."""
    return getattr(_supervision, "instance", None)

@contextmanager
def _supervised(instance: "SandboxInstance", export: str) -> Iterator[None]:
    prev = getattr(_supervision, "instance", None)
    prev_export = instance.current_export
    _supervision.instance = instance
    instance.current_export = export
    try:
        yield
    finally:
        _supervision.instance = prev
        instance.current_export = prev_export

def _trap_code_name(e: BaseException) -> Optional[str]:
    code = getattr(e, "trap_code", None)
    return getattr(code, "name", None)

def _to_invocation_error(export: str, e: BaseException, pending: Optional[SandboxTrap]) -> InvocationError:
    if pending is not None:
        return InvocationError(f"call {export}: {pending}", export=export, cause=pending)
    if isinstance(e, SandboxTrap):
        return InvocationError(f"call {export}: {e}", export=export, cause=e)
    if isinstance(e, wasmtime.ExitTrap):
        trap = SandboxTrap(f"module exited with status {e.code}", export=export, diagnostic=str(e))
        return InvocationError(f"call {export}: {trap}", export=export, cause=trap)
    code = _trap_code_name(e)
    text = str(e)
    if code == "INTERRUPT" or (code is None and "interrupt" in text):
        return CallTimeoutError(f"call {export}: deadline exceeded", export=export, cause=e)
    if code == "OUT_OF_FUEL" or (code is None and "all fuel consumed" in text):
        return FuelExhaustedError(f"call {export}: fuel exhausted", export=export, cause=e)
    return InvocationError(f"call {export}: {text}", export=export, cause=e)


class SandboxInstance:
    """One instantiation of the compiled module with its own store and memory.

    Exactly one call may be in flight at a time; callers needing parallel
    throughput create more instances.
    """

    def __init__(self, runtime: "SandboxRuntime", store: wasmtime.Store, instance: wasmtime.Instance):
        self.runtime = runtime
        self._store: Optional[wasmtime.Store] = store
        self._instance: Optional[wasmtime.Instance] = instance
        self._exports = instance.exports(store)
        self.pending_trap: Optional[SandboxTrap] = None
        self.current_export: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._store is None

    @property
    def store(self) -> wasmtime.Store:
        if self._store is None:
            raise SandboxError("instance is closed")
        return self._store

    def export(self, name: str) -> Any:
        if self._store is None:
            raise SandboxError("instance is closed", export=name)
        return self._exports.get(name)

    def has_export(self, name: str) -> bool:
        return isinstance(self.export(name), wasmtime.Func)

    @property
    def memory(self) -> wasmtime.Memory:
        mem = self.export("memory")
        if not isinstance(mem, wasmtime.Memory):
            raise FunctionNotFound("module does not export memory", export="memory")
        return mem

    def _arm(self) -> None:
        cfg = self.runtime.config
        if cfg.fuel is not None:
            self.store.set_fuel(cfg.fuel)
        ticks = cfg.deadline_ticks()
        if ticks is not None:
            self.store.set_epoch_deadline(ticks)

    def invoke(self, name: str, *params: int) -> Any:
        """Call export ``name`` with raw wasm values.

        Traps, host-shim errors and runtime failures come back as
        ``InvocationError``; the host process is never taken down.
        """
        fn = self.export(name)
        if not isinstance(fn, wasmtime.Func):
            raise FunctionNotFound(f"function {name} not found", export=name)
        self._arm()
        self.pending_trap = None
        self.runtime.audit.emit("call", export=name, argc=len(params))
        with _supervised(self, name):
            try:
                ret = fn(self.store, *params)
            except Exception as e:
                pending, self.pending_trap = self.pending_trap, None
                raise _to_invocation_error(name, e, pending) from (pending or e)
        pending, self.pending_trap = self.pending_trap, None
        if pending is not None:
            raise InvocationError(f"call {name}: {pending}", export=name, cause=pending) from pending
        return ret

    def read(self, addr: int, size: int) -> bytes:
        mem = self.memory
        end = addr + size
        if addr < 0 or end > mem.data_len(self.store):
            raise InvocationError(f"read out of bounds: {addr}+{size}")
        return bytes(mem.read(self.store, addr, end))

    def write(self, addr: int, data: bytes) -> None:
        mem = self.memory
        if addr < 0 or addr + len(data) > mem.data_len(self.store):
            raise InvocationError(f"write out of bounds: {addr}+{len(data)}")
        mem.write(self.store, data, addr)

    def read_cstring(self, addr: int, *, chunk: int = 4096) -> bytes:
        """Bytes from ``addr`` up to the first NUL or the end of memory."""
        mem = self.memory
        size = mem.data_len(self.store)
        out = bytearray()
        pos = addr
        while 0 <= pos < size:
            block = mem.read(self.store, pos, min(pos + chunk, size))
            nul = block.find(0)
            if nul >= 0:
                out += block[:nul]
                break
            out += block
            pos += len(block)
        return bytes(out)

    def malloc(self, size: int) -> int:
        ptr = self.invoke(MALLOC, size)
        return (ptr or 0) & 0xFFFFFFFF

    def free(self, ptr: int) -> None:
        if ptr:
            self.invoke(FREE, as_i32(ptr))

    def close(self) -> None:
        if self._store is None:
            return
        self._exports = None
        self._instance = None
        self._store = None
        self.runtime._instance_closed()

    def __enter__(self) -> "SandboxInstance":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def as_i32(v: int) -> int:
    v &= 0xFFFFFFFF
    return v - (1 << 32) if v >= (1 << 31) else v


def new_instance(runtime: "SandboxRuntime") -> SandboxInstance:
    """Instantiate the runtime's compiled module with a fresh store and data mount."""
    engine, linker, module = runtime._cached()
    cfg = runtime.config

    wasi = wasmtime.WasiConfig()
    wasi.argv = list(cfg.argv or (cfg.program_name,))
    if cfg.inherit_stdio:
        wasi.inherit_stdout()
        wasi.inherit_stderr()
    mount = mount_from_config(cfg)
    if mount is not None:
        mount.apply(wasi)

    store = wasmtime.Store(engine)
    store.set_wasi(wasi)
    if cfg.max_memory_mb:
        store.set_limits(memory_size=cfg.max_memory_mb * 1024 * 1024)
    if cfg.fuel is not None:
        store.set_fuel(cfg.fuel)
    ticks = cfg.deadline_ticks()
    if ticks is not None:
        store.set_epoch_deadline(ticks)

    try:
        inst = linker.instantiate(store, module)
    except (wasmtime.WasmtimeError, wasmtime.Trap) as e:
        raise InitializationError(f"instantiate module: {e}") from e

    sandbox = SandboxInstance(runtime, store, inst)
    runtime._instance_opened()
    if sandbox.has_export(REACTOR_INIT):
        try:
            sandbox.invoke(REACTOR_INIT)
        except SandboxError as e:
            sandbox.close()
            raise InitializationError(f"initialize module: {e}") from e
    return sandbox
