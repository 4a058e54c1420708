"""
Foundry VTT Integration Bridge.

This module is the seam between the roll adjustment engine and Foundry VTT.
It translates Foundry roll payloads (Roll.toJSON()) into RollOutcomes and
writes adjusted results back, resolves a chat speaker to the owning player,
and turns audit records into GM-only whisper events.

Foundry terms understood:
- Die: {"class": "Die", "faces": 20, "results": [{"result": 12, "active": true}]}
- OperatorTerm: {"class": "OperatorTerm", "operator": "+"}
- NumericTerm: {"class": "NumericTerm", "number": 5}

Dice under a "-" operator and inactive (dropped) results are treated as
static from the engine's point of view.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Optional, TYPE_CHECKING
import copy
import logging

from diehard.data_models import DieResult, RollOutcome
from diehard.observability.run_log import AdjustmentEvent, LogEvent, RunLog

if TYPE_CHECKING:
    from diehard.engine.roll_processor import RollAdjustmentEngine, RollReport

logger = logging.getLogger(__name__)

MODULE_TITLE = "Die Hard"

# Foundry document ownership level for owners
OWNER_LEVEL = 3


class FoundryEventType(str, Enum):
    """Types of events sent to Foundry."""

    CHAT_MESSAGE = "chat_message"
    ROLL_RESULT = "roll_result"


@dataclass
class FoundryEvent:
    """
    An event to be sent to Foundry VTT.

    Matches Foundry's socket message format.
    """

    event_type: FoundryEventType
    data: dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    source: str = "diehard"

    def to_socket_message(self) -> dict[str, Any]:
        """Convert to Foundry socket message format."""
        return {
            "type": self.event_type.value,
            "data": self.data,
            "timestamp": self.timestamp,
            "source": self.source,
        }


def _iter_adjustable_results(roll_data: dict[str, Any]) -> Iterator[tuple[int, dict[str, Any]]]:
    """Yield (faces, result) for active results of positive Die terms, in order."""
    sign = 1
    for term in roll_data.get("terms", []):
        term_class = term.get("class")
        if term_class == "OperatorTerm":
            sign = -1 if term.get("operator") == "-" else 1
            continue
        if term_class == "Die" and sign > 0:
            faces = int(term.get("faces", 0))
            for result in term.get("results", []):
                if result.get("active", True):
                    yield faces, result
        sign = 1


def _term_total(roll_data: dict[str, Any]) -> int:
    """Recompute a Foundry roll total from its terms."""
    total = 0
    sign = 1
    for term in roll_data.get("terms", []):
        term_class = term.get("class")
        if term_class == "OperatorTerm":
            sign = -1 if term.get("operator") == "-" else 1
            continue
        if term_class == "Die":
            total += sign * sum(int(r.get("result", 0)) for r in term.get("results", []) if r.get("active", True))
        elif term_class == "NumericTerm":
            total += sign * int(term.get("number", 0))
        sign = 1
    return total


class FoundryBridge:
    """
    Bridge between the roll adjustment engine and Foundry VTT.

    Handles:
    - Roll payload translation in both directions
    - Speaker to player resolution
    - GM whispers for every audit record
    """

    def __init__(
        self,
        gm_user_ids: Optional[list[str]] = None,
        users: Optional[dict[str, dict[str, Any]]] = None,
        actors: Optional[dict[str, dict[str, Any]]] = None,
        tokens: Optional[dict[str, dict[str, Any]]] = None,
    ):
        self.users = users or {}
        self.actors = actors or {}
        self.tokens = tokens or {}
        self.gm_user_ids = gm_user_ids if gm_user_ids is not None else [
            uid for uid, u in self.users.items() if u.get("isGM")
        ]
        self._pending_events: list[FoundryEvent] = []

    # -------------------------------------------------------------------------
    # Roll translation
    # -------------------------------------------------------------------------

    def outcome_from_roll_data(
        self,
        roll_data: dict[str, Any],
        roll_type: Optional[str] = None,
    ) -> RollOutcome:
        """Build a RollOutcome from a Foundry roll payload."""
        dice = [
            DieResult(faces=faces, value=int(result.get("result", 0)))
            for faces, result in _iter_adjustable_results(roll_data)
        ]
        outcome = RollOutcome(
            dice=dice,
            roll_type=roll_type or (roll_data.get("options") or {}).get("rollType"),
            formula=roll_data.get("formula", ""),
        )
        outcome.modifier = _term_total(roll_data) - outcome.raw_total
        outcome.recompute_total()
        return outcome

    def apply_outcome_to_roll_data(
        self,
        roll_data: dict[str, Any],
        outcome: RollOutcome,
    ) -> dict[str, Any]:
        """
        Return a copy of the payload with the outcome's die values written back
        and the total recomputed.
        """
        updated = copy.deepcopy(roll_data)
        results = list(_iter_adjustable_results(updated))
        if len(results) != len(outcome.dice):
            raise ValueError(
                f"Roll has {len(results)} adjustable dice but outcome has {len(outcome.dice)}"
            )
        for (_, result), die in zip(results, outcome.dice):
            result["result"] = die.value
        updated["total"] = _term_total(updated)
        return updated

    # -------------------------------------------------------------------------
    # Speaker resolution
    # -------------------------------------------------------------------------

    def _owner_of(self, actor_id: Optional[str]) -> Optional[str]:
        actor = self.actors.get(actor_id or "")
        if not actor:
            return None
        ownership = actor.get("ownership") or {}
        owners = [uid for uid, level in ownership.items() if uid != "default" and level >= OWNER_LEVEL]
        players = [uid for uid in owners if uid not in self.gm_user_ids]
        if players:
            return players[0]
        return owners[0] if owners else None

    def resolve_actor_id(self, speaker: Optional[dict[str, Any]]) -> Optional[str]:
        """
        Map a chat speaker to the player it belongs to.

        Tries the speaking actor's owner, then the token's actor's owner, then
        the user whose assigned character is the speaking actor.
        """
        if not speaker:
            return None

        owner = self._owner_of(speaker.get("actor"))
        if owner:
            return owner

        token = self.tokens.get(speaker.get("token") or "")
        if token:
            owner = self._owner_of(token.get("actor_id"))
            if owner:
                return owner

        for user_id, user in self.users.items():
            if speaker.get("actor") and user.get("character") == speaker.get("actor"):
                return user_id
        return None

    def user_name(self, user_id: str) -> str:
        return (self.users.get(user_id) or {}).get("name", "Unknown")

    # -------------------------------------------------------------------------
    # Chat message processing
    # -------------------------------------------------------------------------

    def process_chat_message(
        self,
        message_data: dict[str, Any],
        engine: RollAdjustmentEngine,
    ) -> tuple[dict[str, Any], list[RollReport]]:
        """
        Run every roll in a chat message through the engine.

        Returns the updated message payload and one report per processed
        roll. Messages with no rolls or an unresolvable speaker pass through
        unchanged.
        """
        rolls = message_data.get("rolls") or []
        if not rolls:
            return message_data, []

        user_id = self.resolve_actor_id(message_data.get("speaker"))
        if not user_id:
            logger.debug("Could not resolve speaker to a player; roll left untouched")
            return message_data, []

        updated = copy.deepcopy(message_data)
        reports = []
        for i, roll_data in enumerate(rolls):
            outcome = self.outcome_from_roll_data(roll_data)
            report = engine.process_roll(outcome, user_id, self.user_name(user_id))
            if report.modified:
                updated["rolls"][i] = self.apply_outcome_to_roll_data(roll_data, outcome)
                self.emit_roll_result(user_id, updated["rolls"][i])
            reports.append(report)
        return updated, reports

    # -------------------------------------------------------------------------
    # Event helpers
    # -------------------------------------------------------------------------

    def attach(self, run_log: RunLog) -> None:
        """Whisper every audit record logged to the run log."""
        run_log.subscribe(self._on_log_event)

    def detach(self, run_log: RunLog) -> None:
        run_log.unsubscribe(self._on_log_event)

    def _on_log_event(self, event: LogEvent) -> None:
        if isinstance(event, AdjustmentEvent):
            self.emit_whisper(event.to_whisper_html())

    def emit_whisper(self, content: str) -> None:
        """Emit a chat message visible only to GMs."""
        self._pending_events.append(FoundryEvent(
            event_type=FoundryEventType.CHAT_MESSAGE,
            data={
                "speaker": {"alias": MODULE_TITLE},
                "content": content,
                "type": "whisper",
                "whisper": list(self.gm_user_ids),
            }
        ))

    def emit_roll_result(self, user_id: str, roll_data: dict[str, Any]) -> None:
        """Emit an adjusted roll payload for the host to display."""
        self._pending_events.append(FoundryEvent(
            event_type=FoundryEventType.ROLL_RESULT,
            data={
                "roller": user_id,
                "roll": roll_data,
                "result": roll_data.get("total"),
            }
        ))

    def pending_events(self) -> list[FoundryEvent]:
        return list(self._pending_events)

    def clear_pending_events(self) -> list[FoundryEvent]:
        """Clear and return pending events."""
        events = self._pending_events
        self._pending_events = []
        return events
