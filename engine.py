"""Sprite engine: seeding, rule passes and rendering over one grid.

The module-level functions are stateless and take every collaborator
explicitly; ``SpriteEngine`` owns one grid, rule set, palette and random
generator and is what the CLI and any UI talk to.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .generator import ColorSettings, LetterSettings, Palette, RuleSettings, SpriteSettings
from .grid import SYMBOLS, CharGrid, is_symbol
from .noise import NoiseSettings, noise_fill
from .rule import Rule, RuleError, apply_rule
from .storage import SpriteConfig

logger = logging.getLogger(__name__)


def seed(
    width: int,
    height: int,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[CharGrid, Palette, List[Rule]]:
    """Generate a fresh grid, palette and rule set."""
    if rng is None:
        rng = np.random.default_rng()
    settings = SpriteSettings.random(rng)
    grid = CharGrid(width, height)
    reseed_image(grid, settings.palette, rng)
    return grid, settings.palette, settings.rules


def reseed_image(
    grid: CharGrid,
    palette: Palette,
    rng: np.random.Generator,
    settings: Optional[NoiseSettings] = None,
) -> np.ndarray:
    return noise_fill(grid, palette, rng, settings)


def reseed_rules(alphabet: Sequence[str], rng: np.random.Generator) -> List[Rule]:
    return RuleSettings.random(rng).generate(rng, alphabet)


def reseed_palette(alphabet: Sequence[str], rng: np.random.Generator) -> Palette:
    return ColorSettings.random(rng).generate(rng, alphabet)


def run_pass(grid: CharGrid, rules: List[Rule], rng: np.random.Generator) -> int:
    """Apply every rule once, in random order, against a snapshot of the grid.

    Returns the total number of matches.
    """
    snapshot = grid.flatten()
    total = 0
    for index in rng.permutation(len(rules)):
        rule = rules[index]
        if rule.is_empty:
            continue
        total += apply_rule(grid, rule, snapshot, rng)
    return total


def palette_table(palette: Palette) -> np.ndarray:
    """256-entry RGBA lookup by ASCII code; unknown symbols are transparent."""
    table = np.zeros((256, 4), dtype=np.uint8)
    for symbol, color in palette.items():
        table[ord(symbol)] = color
    return table


def render(grid: CharGrid, palette: Palette) -> bytes:
    """Flat RGBA bytes, one pixel per cell in index order."""
    return palette_table(palette)[grid.pixels].tobytes()


def resize(grid: CharGrid, width: int, height: int):
    grid.resize(width, height)


def _check_symbol(symbol):
    if not is_symbol(symbol):
        raise ValueError(f"Palette symbol {symbol!r} must be one of {SYMBOLS}")


class SpriteEngine:
    """Owns the grid, rules, palette and random source of one sprite."""

    def __init__(self, width: int = 32, height: int = 32, seed: Optional[int] = None):
        self.rng = np.random.default_rng(seed)
        self.grid = CharGrid(width, height)
        self._rules: List[Rule] = []
        self._palette: Palette = {}

    @property
    def rules(self) -> List[Rule]:
        return self._rules

    @rules.setter
    def rules(self, rules: Iterable[Rule]):
        self._rules = list(rules)

    @property
    def palette(self) -> Palette:
        return self._palette

    @palette.setter
    def palette(self, palette: Dict[str, Sequence[int]]):
        for symbol in palette:
            _check_symbol(symbol)
        self._palette = {symbol: tuple(int(c) for c in color) for symbol, color in palette.items()}
        self.grid.changed = True

    @property
    def alphabet(self) -> List[str]:
        return list(self._palette)

    @property
    def needs_redraw(self) -> bool:
        return self.grid.changed

    def seed(self) -> Tuple[CharGrid, Palette, List[Rule]]:
        """Regenerate everything: alphabet, rules, palette and image."""
        settings = SpriteSettings.random(self.rng)
        self._rules = settings.rules
        self._palette = settings.palette
        self.reseed_image()
        logger.debug("seeded %d letters, %d rules", len(settings.letters), len(self._rules))
        return self.grid, self._palette, self._rules

    def reseed_image(self, settings: Optional[NoiseSettings] = None) -> np.ndarray:
        return reseed_image(self.grid, self._palette, self.rng, settings)

    def reseed_rules(self, alphabet: Optional[Sequence[str]] = None) -> List[Rule]:
        if alphabet is None:
            alphabet = self.alphabet or LetterSettings.random(self.rng).generate()
        self._rules = reseed_rules(alphabet, self.rng)
        return self._rules

    def reseed_palette(self, alphabet: Optional[Sequence[str]] = None) -> Palette:
        if alphabet is None:
            alphabet = self.alphabet or LetterSettings.random(self.rng).generate()
        self._palette = reseed_palette(alphabet, self.rng)
        self.grid.changed = True
        return self._palette

    def recolor(self) -> Palette:
        return self.reseed_palette(self.alphabet)

    def run_pass(self) -> int:
        return run_pass(self.grid, self._rules, self.rng)

    def run(self, steps: int) -> List[int]:
        """Run several passes, returning the match total of each."""
        return [self.run_pass() for _ in range(steps)]

    def render(self) -> bytes:
        data = render(self.grid, self._palette)
        self.grid.changed = False
        return data

    def resize(self, width: int, height: int):
        resize(self.grid, width, height)

    # Rule and palette editing

    def add_rule(self, condition: str, action: str) -> Rule:
        rule = Rule(condition, action)
        self._rules.append(rule)
        return rule

    def set_rule(self, index: int, condition: Optional[str] = None, action: Optional[str] = None):
        rule = self._rules[index]
        if condition is not None:
            rule.set_condition(condition)
        if action is not None:
            rule.set_action(action)

    def remove_rule(self, index: int) -> Rule:
        return self._rules.pop(index)

    def set_colour(self, symbol: str, color: Sequence[int]):
        _check_symbol(symbol)
        self._palette[symbol] = tuple(int(c) for c in color)
        self.grid.changed = True

    def load_rules(self, pairs: Iterable[Tuple[str, str]]) -> List[RuleError]:
        """Replace the rule set; rules that fail to compile are skipped and returned."""
        rules = []
        errors = []
        for condition, action in pairs:
            try:
                rules.append(Rule(condition, action))
            except RuleError as e:
                logger.warning("Skipping rule: %s", e)
                errors.append(e)
        self._rules = rules
        return errors

    def to_config(self) -> SpriteConfig:
        return SpriteConfig(
            rules=[rule.to_pair() for rule in self._rules],
            palette=list(self._palette.items()),
        )

    def load_config(self, config: SpriteConfig) -> List[RuleError]:
        self.palette = dict(config.palette)
        return self.load_rules(config.rules)
