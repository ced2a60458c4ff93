import json
from pathlib import Path
from typing import Any


def load_reconstruction_config(config_path: str | None = None) -> dict[str, Any]:
    """
    Loads the reconstruction runtime configuration.
    If no path is provided, looks for reconstruction_config.json in the config
    directory.
    """
    if config_path is None:
        # Default to the file next to this script
        final_path = Path(__file__).parent / "reconstruction_config.json"
    else:
        final_path = Path(config_path)

    with open(final_path) as f:
        data = json.load(f)
        if not isinstance(data, dict):
            raise TypeError(f"Expected dict from {final_path}, got {type(data)}")
        return data


def merge_config(
    base: dict[str, Any], overrides: dict[str, Any] | None
) -> dict[str, Any]:
    """Recursively overlay `overrides` on `base` without mutating either."""
    merged = dict(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged
