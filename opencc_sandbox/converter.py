from __future__ import annotations
from typing import List, Optional

from .datafs import DataDirectory
from .errors import ConversionFailedError, InvalidConverterError, SandboxError
from .instance import SandboxInstance
from .marshaling import call, opencc_close, opencc_convert, opencc_error, opencc_open
from .presets import resolve_config_file
from .result import CallOutcome, ErrorInfo
from .runtime import SandboxRuntime, get_default_runtime

# (opencc_t)-1 as seen through a u32 result
INVALID_HANDLE = 0xFFFFFFFF

UNINITIALIZED = "uninitialized"
OPEN = "open"
CLOSED = "closed"

class Converter:
    """An open OpenCC configuration bound to its own sandbox instance.

    States: uninitialized -> open -> closed, never back. ``convert`` only
    works while open; ``close`` may be called any number of times.

        with Converter("s2tw") as cc:
            cc.convert("汉字")

    Not thread-safe: use one converter per thread.
    """

    def __init__(self, config_file: str = "s2t.json", *, runtime: Optional[SandboxRuntime] = None):
        self.config_file = resolve_config_file(config_file)
        self.runtime = runtime or get_default_runtime()
        self.state = UNINITIALIZED
        self._instance: Optional[SandboxInstance] = None
        self._handle = INVALID_HANDLE
        self.last_outcome: Optional[CallOutcome] = None
        self.diagnostics: List[ErrorInfo] = []

    @property
    def handle(self) -> int:
        return self._handle

    def _check_config_file(self) -> None:
        cfg = self.runtime.config
        if not cfg.check_config_files or not cfg.data_dir:
            return
        data = DataDirectory(cfg.data_dir)
        # a missing directory is reported by instance creation instead
        if data.exists() and not data.has_config(self.config_file):
            raise InvalidConverterError(f"configuration not found: {self.config_file}")

    def open(self) -> "Converter":
        if self.state != UNINITIALIZED:
            raise InvalidConverterError(f"converter is {self.state}")
        try:
            self._check_config_file()
        except InvalidConverterError:
            self.state = CLOSED
            raise
        instance = self.runtime.new_instance()
        try:
            outcome = call(instance, opencc_open(self.config_file))
            self._keep(outcome)
            handle = outcome.unwrap()
            if handle == INVALID_HANDLE:
                detail = self._module_error(instance)
                msg = f"open {self.config_file}: invalid converter"
                raise InvalidConverterError(f"{msg}: {detail}" if detail else msg)
        except BaseException:
            instance.close()
            self.state = CLOSED
            raise
        self._instance = instance
        self._handle = handle
        self.state = OPEN
        return self

    def convert(self, text: str) -> str:
        if self.state != OPEN or self._instance is None or self._handle == INVALID_HANDLE:
            raise InvalidConverterError(f"converter is {self.state}")
        outcome = call(self._instance, opencc_convert(self._handle, text))
        self._keep(outcome)
        result = outcome.unwrap()
        if result == "" and text != "":
            raise ConversionFailedError(f"convert with {self.config_file} returned no output")
        return result

    def last_error(self) -> str:
        """Last error message recorded by the module, if it exports one."""
        if self._instance is None:
            return ""
        return self._module_error(self._instance)

    def close(self) -> None:
        instance = self._instance
        if instance is None:
            self._handle = INVALID_HANDLE
            self.state = CLOSED
            return
        try:
            if self._handle != INVALID_HANDLE:
                outcome = call(instance, opencc_close(self._handle))
                self._keep(outcome)
                if not outcome.ok:
                    info = ErrorInfo.from_exc("close", outcome.error, export="opencc_close")
                    self.diagnostics.append(info)
                    self.runtime.audit.emit("close_failed", config=self.config_file, error=info.message)
        finally:
            self._handle = INVALID_HANDLE
            self._instance = None
            self.state = CLOSED
            instance.close()

    def _keep(self, outcome: CallOutcome) -> None:
        self.last_outcome = outcome
        self.diagnostics.extend(outcome.suppressed)

    def _module_error(self, instance: SandboxInstance) -> str:
        if not instance.has_export("opencc_error"):
            return ""
        outcome = call(instance, opencc_error())
        return outcome.value if outcome.ok else ""

    def __enter__(self) -> "Converter":
        if self.state == UNINITIALIZED:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Converter({self.config_file!r}, state={self.state!r})"


def open_converter(config_file: str = "s2t.json", *, runtime: Optional[SandboxRuntime] = None) -> Converter:
    return Converter(config_file, runtime=runtime).open()
