"""Pattern rules: regex conditions over 3x3 windows and rewrite actions.

Action source is a run of ``<location><value>[<chance>]`` tokens:

    location  1-9  write to that window slot
              A-Z  write to every slot holding that letter
              *    write to all 9 slots
    value     1-9  use the symbol currently in that slot
              A-Z  use that letter
              *    use the symbol in a random slot
    chance    optional probability in (0, 1], e.g. ``[0.25]``

Example: ``5B`` turns the center cell into B, ``A*[0.5]`` replaces every A in
the window with a random neighbour half of the time.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np

from .grid import CharGrid, FILL_CHAR

logger = logging.getLogger(__name__)

ACTION_PATTERN = re.compile(r"([A-Z1-9*])([A-Z1-9*])(?:\[(0?\.\d+|1(?:\.0*)?)\])?")


class RuleError(ValueError):
    pass


class ParamKind(Enum):
    CHAR = "char"           # literal symbol
    INDEX = "index"         # window slot 1-9
    WILDCARD = "wildcard"


@dataclass(frozen=True)
class ActionParam:
    kind: ParamKind
    char: str = ""
    index: int = 0

    @classmethod
    def from_token(cls, token: str) -> "ActionParam":
        if token == "*":
            return cls(ParamKind.WILDCARD)
        if token.isdigit():
            return cls(ParamKind.INDEX, index=int(token))
        return cls(ParamKind.CHAR, char=token)

    def to_token(self) -> str:
        if self.kind == ParamKind.WILDCARD:
            return "*"
        if self.kind == ParamKind.INDEX:
            return str(self.index)
        return self.char


@dataclass(frozen=True)
class Action:
    location: ActionParam
    value: ActionParam
    chance: Optional[float] = None

    def to_string(self) -> str:
        token = self.location.to_token() + self.value.to_token()
        if self.chance is not None:
            token += f"[{format_chance(self.chance)}]"
        return token


def format_chance(chance: float) -> str:
    """Shortest positional text that parses back to the same float."""
    return np.format_float_positional(chance, trim="-")


def parse_action(source: str) -> List[Action]:
    """Parse action tokens, skipping anything that does not fit the grammar.

    A token whose chance is zero (``[0.0]``, ``[.0]``) is skipped as well.
    """
    actions = []
    for match in ACTION_PATTERN.finditer(source):
        location, value, chance = match.groups()
        if chance is not None and float(chance) == 0.0:
            continue
        actions.append(Action(
            location=ActionParam.from_token(location),
            value=ActionParam.from_token(value),
            chance=float(chance) if chance is not None else None,
        ))
    return actions


def format_actions(actions: List[Action]) -> str:
    return "".join(action.to_string() for action in actions)


def compile_condition(source: str) -> "re.Pattern":
    try:
        return re.compile(source)
    except re.error as e:
        raise RuleError(f"Invalid condition '{source}': {e}") from e


class Rule:
    """A condition pattern plus the actions run wherever it matches.

    The original source text of both halves is kept so rules can be edited
    and saved exactly as written.
    """

    def __init__(self, condition: str, action: str):
        self._condition = compile_condition(condition)
        self._actions = parse_action(action)
        self.original_condition = condition
        self.original_action = action

    @property
    def condition(self) -> "re.Pattern":
        return self._condition

    @property
    def actions(self) -> List[Action]:
        return self._actions

    @property
    def is_empty(self) -> bool:
        return self.original_condition == ""

    def set_condition(self, condition: str):
        self._condition = compile_condition(condition)
        self.original_condition = condition

    def set_action(self, action: str):
        self._actions = parse_action(action)
        self.original_action = action

    def matches(self, window: str) -> bool:
        return self._condition.search(window) is not None

    def to_pair(self):
        return self.original_condition, self.original_action

    def __repr__(self):
        return f"Rule({self.original_condition!r}, {self.original_action!r})"

    def __eq__(self, other):
        if not isinstance(other, Rule):
            return False
        return self.to_pair() == other.to_pair()

    def __hash__(self):
        return hash(self.to_pair())


def apply_actions(
    grid: CharGrid,
    actions: List[Action],
    window: str,
    x: int,
    y: int,
    rng: np.random.Generator,
):
    """Run one matched rule's actions for the window centered on (x, y).

    Values and symbol locations are read from ``window`` (the frozen snapshot);
    writes go straight to ``grid``. A value resolving to FILL_CHAR stops the
    remaining actions for this match.
    """
    offsets = grid.neighbourhood_offsets(x, y)
    for action in actions:
        if action.chance is not None and rng.random() > action.chance:
            continue

        if action.value.kind == ParamKind.CHAR:
            value = action.value.char
        elif action.value.kind == ParamKind.INDEX:
            value = window[action.value.index - 1]
        else:
            value = window[rng.integers(0, 9)]

        if value == FILL_CHAR:
            return

        if action.location.kind == ParamKind.CHAR:
            slots = [i for i, c in enumerate(window) if c == action.location.char]
        elif action.location.kind == ParamKind.INDEX:
            slots = [action.location.index - 1]
        else:
            slots = range(9)

        for slot in slots:
            loc = offsets[slot]
            if loc is not None:
                grid.set(loc[0], loc[1], value)


def apply_rule(grid: CharGrid, rule: Rule, snapshot: str, rng: np.random.Generator) -> int:
    """Match ``rule`` against every cell's window in ``snapshot`` and apply it.

    Returns the number of matching cells.
    """
    total = 0
    for index in range(grid.size):
        window = snapshot[index * 9:index * 9 + 9]
        if rule.matches(window):
            total += 1
            x, y = grid.xy_from_index(index)
            apply_actions(grid, rule.actions, window, x, y, rng)
    logger.debug("rule %r matches: %d", rule.original_condition, total)
    return total
