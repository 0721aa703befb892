from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Tuple
import threading

import wasmtime

from .audit import AuditSink, AuditStream, LoggingAuditSink
from .config import BridgeConfig, default_config
from .errors import InitializationError
from .instance import SandboxInstance, new_instance
from .shims import register_host_imports

class EpochTicker(threading.Thread):
    """Advances the engine epoch so per-call deadlines can fire."""

    def __init__(self, engine: wasmtime.Engine, interval_ms: int):
        super().__init__(name="opencc-sandbox-epoch", daemon=True)
        self.engine = engine
        self.interval_s = max(interval_ms, 1) / 1000.0
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            self.engine.increment_epoch()

    def stop(self) -> None:
        self._stop_event.set()


class SandboxRuntime:
    """Engine, linker and compiled module shared by every instance.

    Built lazily on the first ``acquire()``; the lock is only held while
    building, afterwards the cached objects are read without locking.
    Construct one per application (or per test) and pass it to the
    converter and convenience calls; ``get_default_runtime()`` holds a
    process-wide one built from ``default_config()``.
    """

    def __init__(self, config: Optional[BridgeConfig] = None, *, audit_sinks: Optional[List[AuditSink]] = None):
        self.config = config or default_config()
        sinks = list(audit_sinks) if audit_sinks is not None else [LoggingAuditSink()]
        self.audit = AuditStream(sinks)
        self._lock = threading.Lock()
        self._count_lock = threading.Lock()
        self._cache: Optional[Tuple[wasmtime.Engine, wasmtime.Linker, wasmtime.Module]] = None
        self._ticker: Optional[EpochTicker] = None
        self.compile_count = 0
        self._live = 0

    @property
    def ready(self) -> bool:
        return self._cache is not None

    @property
    def live_instances(self) -> int:
        with self._count_lock:
            return self._live

    @property
    def linker(self) -> wasmtime.Linker:
        return self._cached()[1]

    def acquire(self) -> Tuple[wasmtime.Engine, wasmtime.Module]:
        engine, _, module = self._cached()
        return engine, module

    def _cached(self) -> Tuple[wasmtime.Engine, wasmtime.Linker, wasmtime.Module]:
        cache = self._cache
        if cache is None:
            with self._lock:
                if self._cache is None:
                    self._cache = self._build()
                cache = self._cache
        return cache

    def new_instance(self) -> SandboxInstance:
        return new_instance(self)

    def close(self) -> None:
        """Stop the epoch ticker and drop the compiled module.

        Open instances keep working until closed; the next ``acquire()``
        compiles again.
        """
        with self._lock:
            ticker, self._ticker = self._ticker, None
            self._cache = None
        if ticker is not None:
            ticker.stop()
            ticker.join()

    def __enter__(self) -> "SandboxRuntime":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _build(self) -> Tuple[wasmtime.Engine, wasmtime.Linker, wasmtime.Module]:
        cfg = self.config
        wcfg = wasmtime.Config()
        if cfg.fuel is not None:
            wcfg.consume_fuel = True
        if cfg.timeout_ms:
            wcfg.epoch_interruption = True
        try:
            engine = wasmtime.Engine(wcfg)
            linker = wasmtime.Linker(engine)
            linker.define_wasi()
            register_host_imports(linker, audit=self.audit, trap_message_limit=cfg.trap_message_limit)
        except wasmtime.WasmtimeError as e:
            raise InitializationError(f"register host imports: {e}") from e

        source = cfg.module_source
        try:
            if source is None:
                if not cfg.module_path:
                    raise InitializationError("no module_path or module_source configured")
                source = Path(cfg.module_path).read_bytes()
            module = wasmtime.Module(engine, source)
        except OSError as e:
            raise InitializationError(f"read module {cfg.module_path}: {e}") from e
        except wasmtime.WasmtimeError as e:
            raise InitializationError(f"compile module: {e}") from e
        self.compile_count += 1
        self.audit.emit("compile", bytes=len(source), path=(cfg.module_path if cfg.module_source is None else None))

        if cfg.timeout_ms:
            self._ticker = EpochTicker(engine, cfg.epoch_tick_ms)
            self._ticker.start()
        # published as one tuple: _cached() reads it without the lock
        return engine, linker, module

    def _instance_opened(self) -> None:
        with self._count_lock:
            self._live += 1
            live = self._live
        self.audit.emit("instance_open", live=live)

    def _instance_closed(self) -> None:
        with self._count_lock:
            self._live -= 1
            live = self._live
        self.audit.emit("instance_close", live=live)


_default_lock = threading.Lock()
_default_runtime: Optional[SandboxRuntime] = None

def get_default_runtime() -> SandboxRuntime:
    global _default_runtime
    rt = _default_runtime
    if rt is None:
        with _default_lock:
            if _default_runtime is None:
                _default_runtime = SandboxRuntime()
            rt = _default_runtime
    return rt

def set_default_runtime(runtime: Optional[SandboxRuntime]) -> None:
    global _default_runtime
    with _default_lock:
        _default_runtime = runtime
