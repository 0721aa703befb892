from __future__ import annotations
from dataclasses import dataclass
from typing import Dict

@dataclass(frozen=True)
class ConversionPreset:
    name: str
    config_file: str
    description: str = ""

_PRESETS = (
    ("s2t", "Simplified Chinese to Traditional Chinese"),
    ("t2s", "Traditional Chinese to Simplified Chinese"),
    ("s2tw", "Simplified Chinese to Traditional Chinese (Taiwan Standard)"),
    ("tw2s", "Traditional Chinese (Taiwan Standard) to Simplified Chinese"),
    ("s2hk", "Simplified Chinese to Traditional Chinese (Hong Kong variant)"),
    ("hk2s", "Traditional Chinese (Hong Kong variant) to Simplified Chinese"),
    ("s2twp", "Simplified Chinese to Traditional Chinese (Taiwan Standard) with Taiwanese idiom"),
    ("tw2sp", "Traditional Chinese (Taiwan Standard) to Simplified Chinese with Mainland Chinese idiom"),
    ("t2tw", "Traditional Chinese (OpenCC Standard) to Taiwan Standard"),
    ("tw2t", "Traditional Chinese (Taiwan Standard) to Traditional Chinese (OpenCC Standard)"),
    ("t2hk", "Traditional Chinese (OpenCC Standard) to Hong Kong variant"),
    ("hk2t", "Traditional Chinese (Hong Kong variant) to Traditional Chinese (OpenCC Standard)"),
    ("t2jp", "Traditional Chinese Characters (Kyujitai) to New Japanese Kanji (Shinjitai)"),
    ("jp2t", "New Japanese Kanji (Shinjitai) to Traditional Chinese Characters (Kyujitai)"),
)

def conversion_presets() -> Dict[str, ConversionPreset]:
    return {name: ConversionPreset(name=name, config_file=f"{name}.json", description=desc) for name, desc in _PRESETS}

def get_preset(name: str) -> ConversionPreset:
    presets = conversion_presets()
    key = name[:-5] if name.endswith(".json") else name
    if key not in presets:
        raise KeyError(f"unknown conversion preset: {name}")
    return presets[key]

def resolve_config_file(name: str) -> str:
    """Map a preset name such as "s2t" to "s2t.json"; anything else passes through."""
    if not name:
        raise ValueError("configuration id must not be empty")
    preset = conversion_presets().get(name)
    return preset.config_file if preset else name
