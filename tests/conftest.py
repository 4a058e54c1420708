"""
Pytest fixtures for the Die Hard test suite.

Provides settings, in-memory stores, a rule book, a run log and a fully
wired adjustment engine.
"""

import pytest

from diehard.data_models import (
    AverageKarmaConfig,
    DiceRoller,
    KarmaConfig,
    SimpleKarmaConfig,
)
from diehard.engine.roll_processor import RollAdjustmentEngine
from diehard.observability.run_log import RunLog
from diehard.rules.rule_book import FudgeRuleBook
from diehard.settings.settings import DieHardSettings
from diehard.storage.stores import (
    InMemoryCounterStore,
    InMemoryHistoryStore,
    InMemoryRuleStore,
)


# =============================================================================
# DICE FIXTURES
# =============================================================================


@pytest.fixture
def seeded_dice():
    """Provide a seeded DiceRoller for reproducible tests."""
    roller = DiceRoller(seed=42)
    yield roller
    roller.clear_roll_log()


@pytest.fixture
def clean_dice():
    """Provide a DiceRoller without seed."""
    return DiceRoller()


# =============================================================================
# SETTINGS FIXTURES
# =============================================================================


@pytest.fixture
def settings():
    """Default settings: fudge and karma switched on, both policies off."""
    return DieHardSettings()


@pytest.fixture
def simple_karma_settings():
    """Simple karma over the last 3 rolls, floor of 15 below 10."""
    return DieHardSettings(
        karma=KarmaConfig(
            simple=SimpleKarmaConfig(enabled=True, history_size=3, threshold=10, min_value=15),
            average=AverageKarmaConfig(enabled=False, history_size=3),
        )
    )


# =============================================================================
# STORE FIXTURES
# =============================================================================


@pytest.fixture
def history_store():
    return InMemoryHistoryStore(max_size=20)


@pytest.fixture
def counter_store():
    return InMemoryCounterStore()


@pytest.fixture
def rule_book():
    return FudgeRuleBook(InMemoryRuleStore())


@pytest.fixture
def run_log():
    return RunLog()


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def engine(settings, rule_book, history_store, counter_store, run_log):
    """Adjustment engine over in-memory stores."""
    return RollAdjustmentEngine(
        settings=settings,
        rule_book=rule_book,
        history_store=history_store,
        counter_store=counter_store,
        run_log=run_log,
    )
