"""Sprite rule engine - grow pixel textures from noise and random local rewrite rules."""

from .grid import CharGrid, FILL_CHAR
from .rule import Rule, RuleError, parse_action
from .generator import SpriteSettings
from .noise import noise_fill
from .engine import SpriteEngine, run_pass, render
from .storage import SpriteConfig

__all__ = [
    "CharGrid", "FILL_CHAR", "Rule", "RuleError", "parse_action", "SpriteSettings",
    "noise_fill", "SpriteEngine", "run_pass", "render", "SpriteConfig",
]
