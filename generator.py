"""Random alphabets, rule sets and palettes."""

import colorsys
import string
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .rule import Rule

Color = Tuple[int, int, int, int]
Palette = Dict[str, Color]


def weighted_index_values(
    rng: np.random.Generator,
    values: Sequence,
    weights: Sequence[float],
    quantity: int,
) -> list:
    """Pick ``quantity`` distinct values, each draw proportional to its weight."""
    p = np.asarray(weights, dtype=np.float64)
    p = p / p.sum()
    quantity = min(quantity, int(np.count_nonzero(p)))
    indices = rng.choice(len(values), size=quantity, replace=False, p=p)
    return [values[i] for i in indices]


def weighted_values(
    rng: np.random.Generator,
    values: Sequence,
    ratio: float,
    pref_weight: int,
    quantity: int,
) -> list:
    """Weighted pick where the first ``ratio`` share of values gets ``pref_weight``."""
    num_high = int(np.floor(len(values) * ratio + 0.5))
    num_low = len(values) - num_high
    weights = [pref_weight] * num_high + [1] * num_low
    return weighted_index_values(rng, values, weights, quantity)


@dataclass
class LetterSettings:
    num_letters: int = 8

    @classmethod
    def random(cls, rng: np.random.Generator) -> "LetterSettings":
        return cls(num_letters=int(rng.integers(6, 27)))

    def generate(self) -> List[str]:
        return list(string.ascii_uppercase[:self.num_letters])


@dataclass
class RuleSettings:
    """Tunables for one rule-generation run.

    ``letter_distribution`` is the share of letters that get the preferred
    weight ``letter_distribution_pref`` when picking condition letters and
    action values. Direction weights bias which of the 9 window slots are
    used by index-style conditions and actions.
    """
    letter_distribution: float = 0.5
    letter_distribution_pref: int = 2
    rules_range: Tuple[int, int] = (5, 8)
    condition_cell_fill_range: Tuple[int, int] = (1, 3)
    condition_direction_weight: List[int] = field(default_factory=lambda: [1] * 9)
    condition_direction_chance: float = 0.5
    action_max_quantity: int = 2
    action_chance_for_chance: float = 0.25
    action_direction_weight: List[int] = field(default_factory=lambda: [1] * 9)
    action_activ_inhib_chance: float = 0.3
    action_activ_inhib_ratio: float = 0.5
    action_wildcard_chance: float = 0.1

    @classmethod
    def random(cls, rng: np.random.Generator) -> "RuleSettings":
        return cls(
            letter_distribution=float(rng.uniform(0.0, 1.0)),
            letter_distribution_pref=int(rng.integers(1, 6)),
            rules_range=(5, 8),
            condition_cell_fill_range=(1, int(rng.integers(1, 6))),
            condition_direction_weight=[int(w) for w in rng.integers(1, 4, size=9)],
            condition_direction_chance=float(rng.uniform(0.3, 0.7)),
            action_max_quantity=int(rng.integers(1, 4)),
            action_chance_for_chance=float(rng.uniform(0.1, 0.4)),
            action_direction_weight=[int(w) for w in rng.integers(1, 4, size=9)],
            action_activ_inhib_chance=float(rng.uniform(0.1, 0.6)),
            action_activ_inhib_ratio=float(rng.uniform(0.0, 1.0)),
            action_wildcard_chance=float(rng.uniform(0.05, 0.3)),
        )

    def _letters(self, rng: np.random.Generator, letters: Sequence[str], quantity: int) -> List[str]:
        return weighted_values(
            rng, letters, self.letter_distribution, self.letter_distribution_pref, quantity
        )

    def generate(self, rng: np.random.Generator, letters: Sequence[str]) -> List[Rule]:
        low, high = self.rules_range
        return [self.generate_single(rng, letters) for _ in range(rng.integers(low, high))]

    def generate_condition(self, rng: np.random.Generator, condition_letters: List[str]) -> str:
        low, high = self.condition_cell_fill_range
        cell_fill = int(rng.integers(low, high + 1))

        if rng.random() < self.condition_direction_chance:
            # pinned slots, everything else matches anything
            slots = weighted_index_values(rng, range(9), self.condition_direction_weight, cell_fill)
            chars = ["."] * 9
            for slot in slots:
                chars[slot] = condition_letters[rng.integers(len(condition_letters))]
            return "".join(chars)

        # n occurrences of the condition letters anywhere in the window
        return "(?:[{}].*){{{}}}".format("".join(condition_letters), cell_fill)

    def generate_action(
        self,
        rng: np.random.Generator,
        letters: Sequence[str],
        condition_letters: List[str],
    ) -> str:
        location = str(weighted_index_values(rng, range(1, 10), self.action_direction_weight, 1)[0])
        value = self._letters(rng, letters, 1)[0]

        if rng.random() < self.action_activ_inhib_chance:
            if rng.random() < self.action_activ_inhib_ratio:
                # activator: write a condition letter
                value = condition_letters[rng.integers(len(condition_letters))]
            else:
                # inhibitor: overwrite the condition letters
                location = condition_letters[rng.integers(len(condition_letters))]
        else:
            if rng.random() < self.action_wildcard_chance:
                location = "*"
            choices = list(letters) + [str(n) for n in range(1, 10)]
            value = choices[rng.integers(len(choices))]

        token = location + value
        if rng.random() < self.action_chance_for_chance:
            token += "[{:.2f}]".format(rng.uniform(0.01, 0.90))
        return token

    def generate_single(self, rng: np.random.Generator, letters: Sequence[str]) -> Rule:
        num_letters = int(rng.integers(1, max(1, len(letters) // 2) + 1))
        condition_letters = self._letters(rng, letters, num_letters)
        condition = self.generate_condition(rng, condition_letters)

        actions = "".join(
            self.generate_action(rng, letters, condition_letters)
            for _ in range(rng.integers(1, self.action_max_quantity + 1))
        )
        return Rule(condition, actions)


def hsl_to_rgba(hue: float, saturation: float, lightness: float) -> Color:
    """Convert hue in degrees, saturation and lightness in [0, 1] to 8-bit RGBA."""
    r, g, b = colorsys.hls_to_rgb((hue % 360.0) / 360.0, lightness, saturation)
    return int(round(r * 255)), int(round(g * 255)), int(round(b * 255)), 255


@dataclass
class ColorSettings:
    """Palette tunables.

    Each letter becomes a new primary colour with ``primary_chance``, otherwise
    an accent: a primary with saturation and lightness nudged by up to half of
    ``hue_sat_buffer``. The first letter is always a primary.
    """
    primary_chance: float = 0.1
    hue_sat_buffer: float = 0.1

    @classmethod
    def random(cls, rng: np.random.Generator) -> "ColorSettings":
        return cls(primary_chance=float(rng.uniform(0.05, 0.1)), hue_sat_buffer=0.1)

    def generate_hsl(self, rng: np.random.Generator, count: int) -> List[Tuple[float, float, float]]:
        low, high = self.hue_sat_buffer, 1.0 - self.hue_sat_buffer
        half = self.hue_sat_buffer / 2.0
        primaries: List[Tuple[float, float, float]] = []
        colors = []
        for _ in range(count):
            if not primaries or rng.random() < self.primary_chance:
                color = (
                    float(rng.uniform(0.0, 360.0)),
                    float(rng.uniform(low, high)),
                    float(rng.uniform(low, high)),
                )
                primaries.append(color)
            else:
                hue, sat, light = primaries[rng.integers(len(primaries))]
                color = (
                    hue,
                    float(np.clip(sat + rng.uniform(-half, half), 0.0, 1.0)),
                    float(np.clip(light + rng.uniform(-half, half), 0.0, 1.0)),
                )
            colors.append(color)
        return colors

    def generate(self, rng: np.random.Generator, letters: Sequence[str]) -> Palette:
        return {
            letter: hsl_to_rgba(*hsl)
            for letter, hsl in zip(letters, self.generate_hsl(rng, len(letters)))
        }


@dataclass
class SpriteSettings:
    """A complete random starting point: alphabet, rules and palette."""
    letters: List[str]
    rules: List[Rule]
    palette: Palette

    @classmethod
    def random(cls, rng: Optional[np.random.Generator] = None) -> "SpriteSettings":
        if rng is None:
            rng = np.random.default_rng()
        letters = LetterSettings.random(rng).generate()
        rules = RuleSettings.random(rng).generate(rng, letters)
        palette = ColorSettings.random(rng).generate(rng, letters)
        return cls(letters=letters, rules=rules, palette=palette)
