from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import wasmtime

from .config import BridgeConfig
from .errors import InitializationError

@dataclass(frozen=True)
class MountSpec:
    """Host directory exposed to the sandbox.

    - host_path: directory on the host, e.g. the packaged ``data/``
    - guest_path: where the module sees it; OpenCC opens configs relative to "/"
    - read_only: preopen with read-only dir and file permissions
    """
    host_path: str
    guest_path: str = "/"
    read_only: bool = True

    def apply(self, wasi: wasmtime.WasiConfig) -> None:
        if not Path(self.host_path).is_dir():
            raise InitializationError(f"data directory not found: {self.host_path}")
        try:
            if self.read_only:
                wasi.preopen_dir(
                    self.host_path,
                    self.guest_path,
                    wasmtime.DirPerms.READ_ONLY,
                    wasmtime.FilePerms.READ_ONLY,
                )
            else:
                wasi.preopen_dir(self.host_path, self.guest_path)
        except (wasmtime.WasmtimeError, AttributeError, TypeError) as e:
            # AttributeError/TypeError: installed wasmtime has a different preopen API
            raise InitializationError(f"mount {self.host_path} at {self.guest_path}: {e}") from e

def mount_from_config(config: BridgeConfig) -> Optional[MountSpec]:
    if not config.data_dir:
        return None
    return MountSpec(host_path=str(config.data_dir), guest_path=config.guest_root)

class DataDirectory:
    """Host-side view of the data files the module opens by name."""

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_dir()

    def configs(self) -> List[str]:
        if not self.exists():
            return []
        return sorted(p.name for p in self.path.glob("*.json"))

    def dictionaries(self) -> List[str]:
        if not self.exists():
            return []
        return sorted(p.name for p in self.path.glob("*.ocd2"))

    def has_config(self, name: str) -> bool:
        # Descriptors are looked up by bare file name inside the mount
        candidate = self.path / name.lstrip("/")
        try:
            candidate.resolve().relative_to(self.path.resolve())
        except ValueError:
            return False
        return candidate.is_file()
