"""
Karma statistics for the moderator.

Summarizes each actor's recorded history against the current karma
configuration: averages over each policy's window, the recent range, and
whether each policy would fire on the actor's next roll.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import logging

from diehard.settings.settings import DieHardSettings
from diehard.storage.stores import RollHistoryStore

logger = logging.getLogger(__name__)


def _mean(values: list[int]) -> float:
    return sum(values) / len(values) if values else 0.0


@dataclass
class ActorKarmaStats:
    """Statistics for one actor's history."""

    actor_id: str
    actor_name: str = ""
    karma_enabled: bool = True
    total_rolls: int = 0
    overall_average: float = 0.0
    simple_average: float = 0.0
    average_karma_average: float = 0.0
    min_value: int = 0
    max_value: int = 0
    simple_triggered: bool = False
    average_triggered: bool = False
    recent_rolls: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "karma_enabled": self.karma_enabled,
            "total_rolls": self.total_rolls,
            "overall_average": round(self.overall_average, 2),
            "simple_average": round(self.simple_average, 2),
            "average_karma_average": round(self.average_karma_average, 2),
            "min": self.min_value,
            "max": self.max_value,
            "simple_triggered": self.simple_triggered,
            "average_triggered": self.average_triggered,
            "recent_rolls": self.recent_rolls,
        }


class KarmaStatistics:
    """Reads history through the store and reports per-actor statistics."""

    def __init__(
        self,
        settings: DieHardSettings,
        history_store: RollHistoryStore,
        actor_names: Optional[dict[str, str]] = None,
    ):
        self.settings = settings
        self.history_store = history_store
        self.actor_names = actor_names or {}

    def actor_stats(self, actor_id: str) -> ActorKarmaStats:
        karma = self.settings.karma
        values = [e.value for e in self.history_store.get_history(actor_id)]
        enabled = self.settings.is_karma_enabled_for(actor_id)

        simple_size = max(karma.simple.history_size, 0)
        average_size = max(karma.average.history_size, 0)
        recent = values[-karma.max_history_size:] if karma.max_history_size else []
        simple_window = values[-simple_size:] if simple_size else []
        average_window = values[-average_size:] if average_size else []

        simple_triggered = (
            simple_size >= 1
            and len(values) >= simple_size
            and all(v < karma.simple.threshold for v in simple_window)
            and karma.simple.enabled
            and enabled
        )
        average_triggered = (
            average_size >= 1
            and len(values) >= average_size
            and _mean(average_window) < karma.average.threshold
            and karma.average.enabled
            and enabled
        )

        return ActorKarmaStats(
            actor_id=actor_id,
            actor_name=self.actor_names.get(actor_id, actor_id),
            karma_enabled=enabled,
            total_rolls=len(values),
            overall_average=_mean(values),
            simple_average=_mean(simple_window),
            average_karma_average=_mean(average_window),
            min_value=min(recent) if recent else 0,
            max_value=max(recent) if recent else 0,
            simple_triggered=simple_triggered,
            average_triggered=average_triggered,
            recent_rolls=recent,
        )

    def all_stats(self) -> list[ActorKarmaStats]:
        """Stats for every actor with recorded history."""
        stats = [self.actor_stats(actor_id) for actor_id in self.history_store.actor_ids()]
        return [s for s in stats if s.total_rolls > 0]

    def quick_stats(self) -> list[ActorKarmaStats]:
        """Actors with history, lowest recent average first."""
        stats = self.all_stats()
        stats.sort(key=lambda s: _mean(s.recent_rolls))
        return stats

    def format_quick_stats(self) -> str:
        """Render quick stats as a plain text table."""
        window = self.settings.karma.max_history_size
        lines = [
            "Current Roll Statistics",
            f"Based on last {window} rolls",
            f"{'Player':<20} {'Avg':>6} {'Min':>4} {'Max':>4} {'Count':>6}",
        ]
        stats = self.quick_stats()
        if not stats:
            lines.append("No roll history yet")
        for s in stats:
            lines.append(
                f"{s.actor_name[:20]:<20} {_mean(s.recent_rolls):>6.2f} "
                f"{s.min_value:>4} {s.max_value:>4} {s.total_rolls:>6}"
            )
        return "\n".join(lines)
