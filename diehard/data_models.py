"""
Shared data structures for the Die Hard roll adjustment engine.

These structures are passed between the fudge and karma passes, the stores,
and the host integration. None of them reach into global game state; the
engine receives everything it needs as parameters.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import random
import re
import uuid


# =============================================================================
# CONSTANTS
# =============================================================================

# The d20 is the die every policy is tuned around.
PRIMARY_DIE_FACES = 20

# Rule target meaning "every player".
ALL_ACTORS = "all"


# =============================================================================
# ENUMS
# =============================================================================


class RollType(str, Enum):
    """Generic roll type selectors for fudge rules."""

    RAW = "raw"  # Raw dice
    TOTAL = "total"  # Total (with modifiers)
    SYSTEM = "system"  # Game-system specific handling


GENERIC_ROLL_TYPES = frozenset({RollType.RAW.value, RollType.TOTAL.value, RollType.SYSTEM.value})

# Roll types offered by known game systems, keyed by system id.
SYSTEM_ROLL_TYPES: dict[str, list[dict[str, str]]] = {
    "dnd5e": [
        {"value": "skill", "label": "Skill Check"},
        {"value": "ability", "label": "Ability Check"},
        {"value": "save", "label": "Saving Throw"},
        {"value": "attack", "label": "Attack Roll"},
        {"value": "damage", "label": "Damage Roll"},
        {"value": "death", "label": "Death Save"},
    ],
    "pf2e": [
        {"value": "skill", "label": "Skill Check"},
        {"value": "save", "label": "Saving Throw"},
        {"value": "attack", "label": "Attack Roll"},
        {"value": "damage", "label": "Damage Roll"},
    ],
}


def get_roll_type_choices(system_id: Optional[str] = None) -> list[dict[str, str]]:
    """Roll type choices for rule authoring, generic first."""
    choices = [
        {"value": RollType.RAW.value, "label": "Raw Dice"},
        {"value": RollType.TOTAL.value, "label": "Total (with modifiers)"},
    ]
    if system_id:
        choices.extend(SYSTEM_ROLL_TYPES.get(system_id, []))
    return choices


class AdjustmentKind(str, Enum):
    """Kinds of adjustment reported to the moderator."""

    FUDGE = "Fudge"
    SIMPLE_KARMA = "Simple Karma"
    AVERAGE_KARMA = "Average Karma"


# =============================================================================
# ERRORS
# =============================================================================


class DieHardError(Exception):
    """Base class for errors raised by the roll adjustment engine."""

    pass


# =============================================================================
# ROLL OUTCOMES
# =============================================================================


@dataclass
class DieResult:
    """A single die face result."""

    faces: int
    value: int

    def clamp(self, value: int) -> int:
        """Clamp a candidate value to this die's face range."""
        return max(1, min(value, self.faces))


@dataclass
class RollOutcome:
    """
    A produced roll: ordered dice plus static modifiers.

    The engine mutates die values in place during one adjustment pass.
    Callers recompute the total afterwards with recompute_total().
    """

    dice: list[DieResult] = field(default_factory=list)
    modifier: int = 0
    roll_type: Optional[str] = None
    formula: str = ""
    total: int = 0

    def __post_init__(self):
        if not self.total:
            self.total = self.raw_total + self.modifier

    @property
    def raw_total(self) -> int:
        """Sum of die values, without modifiers."""
        return sum(d.value for d in self.dice)

    def recompute_total(self) -> int:
        """Recompute the total from the current die values."""
        self.total = self.raw_total + self.modifier
        return self.total

    def dice_with_faces(self, faces: int) -> list[tuple[int, DieResult]]:
        """Enumerate (index, die) pairs for dice with the given face count."""
        return [(i, d) for i, d in enumerate(self.dice) if d.faces == faces]

    def values(self) -> list[int]:
        return [d.value for d in self.dice]

    def __str__(self) -> str:
        label = self.formula or "+".join(f"d{d.faces}" for d in self.dice)
        if self.modifier > 0:
            return f"{label}: {self.values()} + {self.modifier} = {self.total}"
        elif self.modifier < 0:
            return f"{label}: {self.values()} - {abs(self.modifier)} = {self.total}"
        return f"{label}: {self.values()} = {self.total}"


@dataclass
class DieChange:
    """One die replaced by an adjustment pass."""

    die_index: int
    faces: int
    from_value: int
    to_value: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "die_index": self.die_index,
            "faces": self.faces,
            "from": self.from_value,
            "to": self.to_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DieChange":
        return cls(
            die_index=data.get("die_index", 0),
            faces=data.get("faces", PRIMARY_DIE_FACES),
            from_value=data["from"],
            to_value=data["to"],
        )

    def __str__(self) -> str:
        return f"d{self.faces}#{self.die_index}: {self.from_value} -> {self.to_value}"


@dataclass
class AdjustmentResult:
    """What one pass did to an outcome."""

    modified: bool = False
    changes: list[DieChange] = field(default_factory=list)
    counter_after: Optional[int] = None


def set_die_value(outcome: RollOutcome, index: int, target: int) -> Optional[DieChange]:
    """
    Clamp and apply a target value to one die.

    Returns the recorded change, or None when the die already shows the
    clamped target.
    """
    die = outcome.dice[index]
    clamped = die.clamp(target)
    if clamped == die.value:
        return None
    change = DieChange(die_index=index, faces=die.faces, from_value=die.value, to_value=clamped)
    die.value = clamped
    return change


# =============================================================================
# FUDGE RULES
# =============================================================================


@dataclass
class FudgeRule:
    """
    A moderator-authored override rule.

    Rules deactivate after their first successful application unless
    persistent. Inactive rules stay in the rule book until removed.
    """

    formula: str
    target_actor_id: str = ALL_ACTORS
    roll_type: str = RollType.RAW.value
    persistent: bool = False
    active: bool = True
    rule_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=datetime.now)

    def applies_to_actor(self, actor_id: str) -> bool:
        return self.target_actor_id == ALL_ACTORS or self.target_actor_id == actor_id

    def applies_to_roll_type(self, roll_type: Optional[str]) -> bool:
        """Generic selectors match any roll; system selectors need a match."""
        if self.roll_type in GENERIC_ROLL_TYPES:
            return True
        return self.roll_type == roll_type

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "target_actor_id": self.target_actor_id,
            "roll_type": self.roll_type,
            "formula": self.formula,
            "persistent": self.persistent,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FudgeRule":
        created = data.get("created_at")
        return cls(
            rule_id=data["rule_id"],
            target_actor_id=data.get("target_actor_id", ALL_ACTORS),
            roll_type=data.get("roll_type", RollType.RAW.value),
            formula=data.get("formula", ""),
            persistent=bool(data.get("persistent", False)),
            active=bool(data.get("active", True)),
            created_at=datetime.fromisoformat(created) if created else datetime.now(),
        )


# =============================================================================
# KARMA CONFIGURATION AND HISTORY
# =============================================================================


@dataclass
class SimpleKarmaConfig:
    """Floor a die after a cold streak."""

    enabled: bool = False
    history_size: int = 5
    threshold: int = 10
    min_value: int = 15


@dataclass
class AverageKarmaConfig:
    """Nudge a die while the rolling average stays low."""

    enabled: bool = False
    history_size: int = 10
    threshold: int = 10
    adjustment: int = 2
    cumulative: bool = False


@dataclass
class KarmaConfig:
    """Global, moderator-editable karma configuration."""

    simple: SimpleKarmaConfig = field(default_factory=SimpleKarmaConfig)
    average: AverageKarmaConfig = field(default_factory=AverageKarmaConfig)

    @property
    def max_history_size(self) -> int:
        """Largest window either policy reads; never below zero."""
        return max(self.simple.history_size, self.average.history_size, 0)

    @property
    def any_enabled(self) -> bool:
        return self.simple.enabled or self.average.enabled


@dataclass
class HistoryEntry:
    """One recorded raw value for an actor."""

    value: int
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        ts = data.get("timestamp")
        return cls(
            value=int(data["value"]),
            timestamp=datetime.fromisoformat(ts) if isinstance(ts, str) else datetime.now(),
        )


# =============================================================================
# DICE AND RANDOMIZATION
# =============================================================================


_TERM_PATTERN = re.compile(r"([+-])?\s*(?:(\d*)[dD](\d+)|(\d+))")


class DiceRoller:
    """
    Produces roll outcomes from dice notation.

    The adjustment engine never rolls; this is only the source of outcomes
    for the command line and for tests. Each roller owns its own RNG so
    seeding one does not affect another.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)
        self._seed = seed
        self._roll_log: list[RollOutcome] = []

    def set_seed(self, seed: int) -> None:
        """Set random seed for reproducibility."""
        self._seed = seed
        self._rng.seed(seed)

    def roll(self, notation: str, roll_type: Optional[str] = None) -> RollOutcome:
        """
        Roll dice using standard notation (e.g., '1d20+5', '2d20', 'd20+1d4-1').

        Args:
            notation: Dice notation string
            roll_type: Optional system roll type (attack, skill, ...)

        Returns:
            RollOutcome with one DieResult per added die; subtracted dice
            are rolled and folded into the modifier

        Raises:
            ValueError: If the notation contains no recognizable terms
        """
        compact = notation.replace(" ", "")
        dice: list[DieResult] = []
        modifier = 0
        pos = 0
        while pos < len(compact):
            match = _TERM_PATTERN.match(compact, pos)
            if not match or match.end() == pos:
                raise ValueError(f"Invalid dice notation: {notation!r}")
            sign = -1 if match.group(1) == "-" else 1
            if match.group(3):
                count = int(match.group(2)) if match.group(2) else 1
                faces = int(match.group(3))
                if faces < 1:
                    raise ValueError(f"Invalid die size in {notation!r}")
                rolled = [DieResult(faces=faces, value=self._rng.randint(1, faces)) for _ in range(count)]
                if sign > 0:
                    dice.extend(rolled)
                else:
                    # Subtracted dice are static, like a negative modifier
                    modifier -= sum(d.value for d in rolled)
            else:
                modifier += sign * int(match.group(4))
            pos = match.end()

        if not dice and modifier == 0:
            raise ValueError(f"Invalid dice notation: {notation!r}")

        outcome = RollOutcome(dice=dice, modifier=modifier, roll_type=roll_type, formula=notation)
        outcome.recompute_total()
        self._roll_log.append(outcome)
        return outcome

    def roll_d20(self, roll_type: Optional[str] = None) -> RollOutcome:
        """Convenience method for d20 rolls."""
        return self.roll("1d20", roll_type)

    def get_roll_log(self) -> list[RollOutcome]:
        return self._roll_log.copy()

    def clear_roll_log(self) -> None:
        self._roll_log = []


def outcome_from_values(
    values: list[int],
    faces: int = PRIMARY_DIE_FACES,
    modifier: int = 0,
    roll_type: Optional[str] = None,
) -> RollOutcome:
    """Build an outcome from explicit die values (all of one die size)."""
    outcome = RollOutcome(
        dice=[DieResult(faces=faces, value=v) for v in values],
        modifier=modifier,
        roll_type=roll_type,
        formula=f"{len(values)}d{faces}" + (f"{modifier:+d}" if modifier else ""),
    )
    outcome.recompute_total()
    return outcome
