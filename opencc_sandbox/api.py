from __future__ import annotations
from typing import Optional

from .converter import Converter
from .errors import ConversionFailedError
from .marshaling import CallSpec, call, opencc_s2t, opencc_t2s
from .runtime import SandboxRuntime, get_default_runtime

def _convert_once(spec: CallSpec, text: str, runtime: Optional[SandboxRuntime]) -> str:
    rt = runtime or get_default_runtime()
    with rt.new_instance() as instance:
        result = call(instance, spec).unwrap()
    if result == "" and text != "":
        raise ConversionFailedError(f"{spec.export} returned no output")
    return result

def convert_s2t(text: str, *, runtime: Optional[SandboxRuntime] = None) -> str:
    """Simplified to Traditional Chinese in a throwaway instance."""
    return _convert_once(opencc_s2t(text), text, runtime)

def convert_t2s(text: str, *, runtime: Optional[SandboxRuntime] = None) -> str:
    """Traditional to Simplified Chinese in a throwaway instance."""
    return _convert_once(opencc_t2s(text), text, runtime)

def convert(text: str, config_file: str = "s2t.json", *, runtime: Optional[SandboxRuntime] = None) -> str:
    """One conversion with any configuration; opens and closes a converter."""
    with Converter(config_file, runtime=runtime) as cc:
        return cc.convert(text)
