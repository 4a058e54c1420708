"""Moderator-facing karma statistics."""

from diehard.reporting.karma_stats import ActorKarmaStats, KarmaStatistics

__all__ = [
    "ActorKarmaStats",
    "KarmaStatistics",
]
