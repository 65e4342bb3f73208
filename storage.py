"""Persistence for sprite rule sets and palettes."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Tuple

from .grid import SYMBOLS, is_symbol

Color = Tuple[int, int, int, int]


class ConfigError(ValueError):
    pass


def _as_color(value, path: str) -> Color:
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        raise ConfigError(f"{path} must be a list of 4 channel values")
    channels = []
    for channel in value:
        if isinstance(channel, bool) or not isinstance(channel, int) or not 0 <= channel <= 255:
            raise ConfigError(f"{path} channels must be integers in 0-255")
        channels.append(channel)
    return tuple(channels)


@dataclass
class SpriteConfig:
    """Rules as (condition, action) source pairs and palette as (symbol, RGBA) pairs.

    Both lists keep their order.
    """
    rules: List[Tuple[str, str]] = field(default_factory=list)
    palette: List[Tuple[str, Color]] = field(default_factory=list)
    notes: str = ""

    def to_dict(self) -> Dict:
        return {
            "rules": [list(pair) for pair in self.rules],
            "palette": [[symbol, list(color)] for symbol, color in self.palette],
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "SpriteConfig":
        if not isinstance(data, dict):
            raise ConfigError("config must be an object")

        rules = []
        for i, pair in enumerate(data.get("rules", [])):
            if (not isinstance(pair, (list, tuple)) or len(pair) != 2
                    or not all(isinstance(part, str) for part in pair)):
                raise ConfigError(f"rules[{i}] must be a [condition, action] pair of strings")
            rules.append((pair[0], pair[1]))

        palette = []
        for i, entry in enumerate(data.get("palette", [])):
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise ConfigError(f"palette[{i}] must be a [symbol, color] pair")
            symbol, color = entry
            if not is_symbol(symbol):
                raise ConfigError(f"palette[{i}] symbol must be one of {SYMBOLS}")
            palette.append((symbol, _as_color(color, f"palette[{i}]")))

        return cls(rules=rules, palette=palette, notes=str(data.get("notes", "")))

    def to_json(self) -> str:
        data = {
            "version": "1.0",
            "updated_at": datetime.now().isoformat(),
            **self.to_dict(),
        }
        return json.dumps(data, indent=2)

    @classmethod
    def from_json(cls, text: str) -> "SpriteConfig":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)

    def save(self, filepath: str):
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.to_json())

    @classmethod
    def load(cls, filepath: str) -> "SpriteConfig":
        with open(filepath, "r") as f:
            return cls.from_json(f.read())
