from __future__ import annotations
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple, Union
import os

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_MODULE_PATH = str(PACKAGE_DIR / "opencc.wasm")
DEFAULT_DATA_DIR = str(PACKAGE_DIR / "data")

@dataclass(frozen=True)
class BridgeConfig:
    # Module artifact; module_source (wasm bytes or WAT text) wins over module_path
    module_path: Optional[str] = DEFAULT_MODULE_PATH
    module_source: Optional[Union[bytes, str]] = None

    # Read-only data directory mounted at guest_root
    data_dir: Optional[str] = DEFAULT_DATA_DIR
    guest_root: str = "/"

    # WASI entry environment
    program_name: str = "opencc"
    argv: Tuple[str, ...] = ("opencc",)
    inherit_stdio: bool = True

    # Per-instance / per-call limits
    max_memory_mb: Optional[int] = None
    fuel: Optional[int] = None
    timeout_ms: Optional[int] = None
    epoch_tick_ms: int = 10

    # Diagnostics read out of sandbox memory on abnormal termination
    trap_message_limit: int = 256

    # Look up configuration ids in data_dir before entering the sandbox
    check_config_files: bool = True

    def deadline_ticks(self) -> Optional[int]:
        if not self.timeout_ms:
            return None
        tick = max(self.epoch_tick_ms, 1)
        return max(1, -(-self.timeout_ms // tick))

def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None

def default_config() -> BridgeConfig:
    """Config for the packaged module and data, with environment overrides.

    OPENCC_SANDBOX_MODULE, OPENCC_SANDBOX_DATA, OPENCC_SANDBOX_TIMEOUT_MS,
    OPENCC_SANDBOX_FUEL, OPENCC_SANDBOX_MAX_MEMORY_MB.
    """
    cfg = BridgeConfig()
    overrides = {}
    if os.environ.get("OPENCC_SANDBOX_MODULE"):
        overrides["module_path"] = os.environ["OPENCC_SANDBOX_MODULE"]
    if os.environ.get("OPENCC_SANDBOX_DATA"):
        overrides["data_dir"] = os.environ["OPENCC_SANDBOX_DATA"]
    for env_name, field_name in (
        ("OPENCC_SANDBOX_TIMEOUT_MS", "timeout_ms"),
        ("OPENCC_SANDBOX_FUEL", "fuel"),
        ("OPENCC_SANDBOX_MAX_MEMORY_MB", "max_memory_mb"),
    ):
        v = _env_int(env_name)
        if v is not None:
            overrides[field_name] = v
    return replace(cfg, **overrides) if overrides else cfg
