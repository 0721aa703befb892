from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, TextIO
import json
import logging
import sys
import threading
import time

from .result import Event

logger = logging.getLogger("opencc_sandbox")

# Events that signal a failure the caller did not see as an exception
WARNING_EVENTS = {"trap", "release_failed", "close_failed", "free_exception_failed"}

class AuditSink:
    def emit(self, event: Event) -> None:
        raise NotImplementedError

class InMemoryAuditSink(AuditSink):
    def __init__(self):
        self.events: List[Event] = []
        self._lock = threading.Lock()

    def emit(self, event: Event) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, typ: str) -> List[Event]:
        with self._lock:
            return [e for e in self.events if e.type == typ]

class StdoutAuditSink(AuditSink):
    """One JSON line per event on ``stream``, or on the current ``sys.stdout``."""
    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def emit(self, event: Event) -> None:
        out = self.stream or sys.stdout
        out.write(json.dumps(asdict(event), ensure_ascii=False, default=str) + "\n")
        out.flush()

class FileAuditSink(AuditSink):
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def emit(self, event: Event) -> None:
        line = json.dumps(event.__dict__, ensure_ascii=True) + "\n"
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)

class LoggingAuditSink(AuditSink):
    """Forward events to the ``opencc_sandbox`` logger."""
    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def emit(self, event: Event) -> None:
        level = logging.WARNING if event.type in WARNING_EVENTS else logging.DEBUG
        if not self.log.isEnabledFor(level):
            return
        self.log.log(level, "%s %s", event.type, json.dumps(event.data, ensure_ascii=True, default=str))

@dataclass(frozen=True)
class AuditSinkSpec:
    kind: str
    options: Dict[str, Any]

def build_audit_sinks(specs: List[AuditSinkSpec]) -> List[AuditSink]:
    sinks: List[AuditSink] = []
    for s in specs:
        kind = s.kind
        opts = s.options or {}
        if kind == "memory":
            sinks.append(InMemoryAuditSink())
        elif kind == "stdout":
            sinks.append(StdoutAuditSink())
        elif kind == "file":
            path = opts.get("path")
            if not path:
                raise ValueError("file sink requires path")
            sinks.append(FileAuditSink(path))
        elif kind == "logging":
            name = opts.get("logger")
            sinks.append(LoggingAuditSink(logging.getLogger(name) if name else None))
        else:
            raise ValueError(f"unknown audit sink kind: {kind}")
    return sinks

class AuditStream:
    def __init__(self, sinks: List[AuditSink], *, t0: Optional[float] = None):
        self.sinks = sinks
        self.t0 = time.monotonic() if t0 is None else t0

    def emit(self, typ: str, **data: Any) -> None:
        event = Event(ts_ms=int((time.monotonic() - self.t0) * 1000), type=typ, data=data)
        for s in self.sinks:
            try:
                s.emit(event)
            except Exception:
                pass
