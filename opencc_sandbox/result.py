from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, List

from .errors import SandboxError

@dataclass
class ErrorInfo:
    stage: str                 # marshal|invoke|release|close|trap
    type: str
    message: str
    export: Optional[str] = None

    @classmethod
    def from_exc(cls, stage: str, e: BaseException, *, export: Optional[str] = None) -> "ErrorInfo":
        return cls(stage=stage, type=type(e).__name__, message=str(e), export=export or getattr(e, "export", None))

@dataclass
class Event:
    ts_ms: int
    type: str                  # compile|instance_open|instance_close|call|trap|release_failed|close_failed
    data: Dict[str, Any]

@dataclass
class CallMetrics:
    wall_ms: int = 0
    bytes_in: int = 0
    bytes_out: int = 0
    allocations: int = 0

@dataclass
class CallOutcome:
    """Primary result of one sandbox call plus any suppressed cleanup errors.

    ``error`` is the primary failure, if any. ``suppressed`` collects the
    failures of best-effort cleanup (buffer releases) that happened while
    producing the outcome; they never replace ``error``.
    """
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None
    suppressed: List[ErrorInfo] = field(default_factory=list)
    metrics: CallMetrics = field(default_factory=CallMetrics)

    def unwrap(self) -> Any:
        if not self.ok:
            raise self.error or SandboxError("sandbox call failed")
        return self.value
