from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict
import json

from .config import BridgeConfig

def _opt_int(v: Any) -> Any:
    return int(v) if v is not None else None

def config_to_dict(c: BridgeConfig) -> Dict[str, Any]:
    d = asdict(c)
    d["argv"] = list(c.argv)
    src = c.module_source
    if isinstance(src, bytes):
        # Binary modules stay out of JSON; callers point module_path at the file instead
        d["module_source"] = None
    return d

def config_from_dict(d: Dict[str, Any]) -> BridgeConfig:
    base = BridgeConfig()
    return BridgeConfig(
        module_path=d.get("module_path", base.module_path),
        module_source=d.get("module_source"),
        data_dir=d.get("data_dir", base.data_dir),
        guest_root=str(d.get("guest_root", base.guest_root)),
        program_name=str(d.get("program_name", base.program_name)),
        argv=tuple(d.get("argv") or (d.get("program_name") or base.program_name,)),
        inherit_stdio=bool(d.get("inherit_stdio", base.inherit_stdio)),
        max_memory_mb=_opt_int(d.get("max_memory_mb")),
        fuel=_opt_int(d.get("fuel")),
        timeout_ms=_opt_int(d.get("timeout_ms")),
        epoch_tick_ms=int(d.get("epoch_tick_ms", base.epoch_tick_ms)),
        trap_message_limit=int(d.get("trap_message_limit", base.trap_message_limit)),
        check_config_files=bool(d.get("check_config_files", base.check_config_files)),
    )

def load_config(path: str) -> BridgeConfig:
    with open(path, "r", encoding="utf-8") as f:
        return config_from_dict(json.load(f))
