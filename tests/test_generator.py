import re

import numpy as np
import pytest

from spritegen.generator import (
    ColorSettings,
    LetterSettings,
    RuleSettings,
    SpriteSettings,
    hsl_to_rgba,
    weighted_index_values,
    weighted_values,
)
from spritegen.rule import ParamKind

LETTERS = list("ABCDEFGH")


class TestWeighted:
    def test_distinct_values(self) -> None:
        rng = np.random.default_rng(0)
        for _ in range(50):
            picked = weighted_index_values(rng, list(range(9)), [1, 2, 3] * 3, 4)
            assert len(picked) == 4
            assert len(set(picked)) == 4

    def test_preferred_values_win_more_often(self) -> None:
        rng = np.random.default_rng(1)
        counts = {letter: 0 for letter in LETTERS}
        for _ in range(2000):
            counts[weighted_values(rng, LETTERS, 0.25, 5, 1)[0]] += 1
        preferred = counts["A"] + counts["B"]
        assert preferred > counts["G"] + counts["H"]


class TestLetters:
    def test_generate(self) -> None:
        assert LetterSettings(6).generate() == list("ABCDEF")
        assert len(LetterSettings(26).generate()) == 26

    def test_random_range(self) -> None:
        rng = np.random.default_rng(2)
        for _ in range(100):
            assert 6 <= LetterSettings.random(rng).num_letters <= 26


class TestRuleSettings:
    def setup_method(self) -> None:
        self.rng = np.random.default_rng(3)

    def test_rule_count_and_compilation(self) -> None:
        for _ in range(20):
            settings = RuleSettings.random(self.rng)
            rules = settings.generate(self.rng, LETTERS)
            assert 5 <= len(rules) < 8
            for rule in rules:
                assert 1 <= len(rule.actions) <= settings.action_max_quantity

    def test_mask_condition(self) -> None:
        settings = RuleSettings(condition_direction_chance=1.0, condition_cell_fill_range=(2, 4))
        for _ in range(30):
            condition = settings.generate_condition(self.rng, ["A", "C"])
            assert len(condition) == 9
            pinned = [c for c in condition if c != "."]
            assert 2 <= len(pinned) <= 4
            assert set(pinned) <= {"A", "C"}

    def test_any_location_condition(self) -> None:
        settings = RuleSettings(condition_direction_chance=0.0, condition_cell_fill_range=(3, 3))
        condition = settings.generate_condition(self.rng, ["B", "D"])
        assert re.fullmatch(r"\(\?:\[[BD]{2}\]\.\*\)\{3\}", condition)

    def test_activator_uses_condition_letter_as_value(self) -> None:
        settings = RuleSettings(action_activ_inhib_chance=1.0, action_activ_inhib_ratio=1.0,
                                action_chance_for_chance=0.0)
        for _ in range(20):
            token = settings.generate_action(self.rng, LETTERS, ["E"])
            assert token[0] in "123456789"
            assert token[1] == "E"

    def test_inhibitor_uses_condition_letter_as_location(self) -> None:
        settings = RuleSettings(action_activ_inhib_chance=1.0, action_activ_inhib_ratio=0.0,
                                action_chance_for_chance=0.0)
        for _ in range(20):
            token = settings.generate_action(self.rng, LETTERS, ["E"])
            assert token[0] == "E"
            assert token[1] in LETTERS

    def test_neither_with_wildcard(self) -> None:
        settings = RuleSettings(action_activ_inhib_chance=0.0, action_wildcard_chance=1.0,
                                action_chance_for_chance=0.0)
        for _ in range(20):
            token = settings.generate_action(self.rng, LETTERS, ["E"])
            assert token[0] == "*"
            assert token[1] in LETTERS + list("123456789")

    def test_chance_literal(self) -> None:
        settings = RuleSettings(action_chance_for_chance=1.0)
        for _ in range(20):
            token = settings.generate_action(self.rng, LETTERS, ["A"])
            match = re.fullmatch(r"..\[(0\.\d\d)\]", token)
            assert match
            assert 0.01 <= float(match.group(1)) <= 0.90

    def test_generated_actions_parse(self) -> None:
        settings = RuleSettings(action_max_quantity=3)
        rule = settings.generate_single(self.rng, LETTERS)
        for action in rule.actions:
            assert action.value.kind in (ParamKind.CHAR, ParamKind.INDEX)


class TestColors:
    def test_hsl_to_rgba(self) -> None:
        assert hsl_to_rgba(0.0, 1.0, 0.5) == (255, 0, 0, 255)
        assert hsl_to_rgba(120.0, 1.0, 0.5) == (0, 255, 0, 255)
        assert hsl_to_rgba(240.0, 0.0, 1.0) == (255, 255, 255, 255)

    def test_palette_covers_letters(self) -> None:
        rng = np.random.default_rng(4)
        palette = ColorSettings.random(rng).generate(rng, LETTERS)
        assert list(palette) == LETTERS
        for color in palette.values():
            assert len(color) == 4
            assert color[3] == 255
            assert all(0 <= c <= 255 for c in color)

    def test_accents_stay_near_primary(self) -> None:
        rng = np.random.default_rng(5)
        settings = ColorSettings(primary_chance=0.0, hue_sat_buffer=0.1)
        colors = settings.generate_hsl(rng, 10)
        hue, sat, light = colors[0]
        assert 0.1 <= sat <= 0.9
        assert 0.1 <= light <= 0.9
        for h, s, l in colors[1:]:
            assert h == hue
            assert abs(s - sat) <= 0.05
            assert abs(l - light) <= 0.05

    def test_all_primaries(self) -> None:
        rng = np.random.default_rng(6)
        colors = ColorSettings(primary_chance=1.0).generate_hsl(rng, 6)
        assert len({h for h, _, _ in colors}) == 6


class TestSpriteSettings:
    def test_deterministic(self) -> None:
        a = SpriteSettings.random(np.random.default_rng(42))
        b = SpriteSettings.random(np.random.default_rng(42))
        assert a.letters == b.letters
        assert [r.to_pair() for r in a.rules] == [r.to_pair() for r in b.rules]
        assert a.palette == b.palette

    @pytest.mark.parametrize("seed", range(5))
    def test_consistent_alphabet(self, seed: int) -> None:
        settings = SpriteSettings.random(np.random.default_rng(seed))
        assert list(settings.palette) == settings.letters
        for rule in settings.rules:
            for action in rule.actions:
                if action.value.kind == ParamKind.CHAR:
                    assert action.value.char in settings.letters
