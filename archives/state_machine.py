"""
Archives - Archive State Machine.

============================================================
PURPOSE
============================================================
Manages the archive lifecycle with strict state transitions.

STATE MACHINE:

    CREATED ──► SUBMITTED ──► STORED ──► PROCESSING ──► PROCESSED
       │            │            │            │
       └────────────┴────────────┴────────────┴──────► INVALID

INVARIANTS:
- Terminal states (processed, invalid) are final
- Re-entering the current state is a no-op
- STORED requires a content fingerprint
- PROCESSED requires a recorded content fingerprint
- Every transition is persisted and logged

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from archives.errors import error_payload
from core.exceptions import StateTransitionError
from storage.database import SessionFactory, transaction_scope
from storage.models.archive import ArchiveRecord, ArchiveStatus
from storage.repositories.accounts import ArchiveRepository


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[ArchiveStatus, Set[ArchiveStatus]] = {
    ArchiveStatus.CREATED: {
        ArchiveStatus.SUBMITTED,
        ArchiveStatus.INVALID,
    },
    ArchiveStatus.SUBMITTED: {
        ArchiveStatus.STORED,
        ArchiveStatus.INVALID,
    },
    ArchiveStatus.STORED: {
        ArchiveStatus.PROCESSING,
        ArchiveStatus.INVALID,
    },
    ArchiveStatus.PROCESSING: {
        ArchiveStatus.PROCESSED,
        ArchiveStatus.INVALID,
    },
    # Terminal states - no transitions out
    ArchiveStatus.PROCESSED: set(),
    ArchiveStatus.INVALID: set(),
}


class InvalidArchiveTransitionError(StateTransitionError):
    """Raised when a transition is not allowed."""

    def __init__(self, archive_id: int, from_state: ArchiveStatus, to_state: ArchiveStatus, reason: str):
        self.archive_id = archive_id
        super().__init__(
            f"Cannot transition archive {archive_id} from {from_state.value} "
            f"to {to_state.value}: {reason}",
            from_state=from_state.value,
            to_state=to_state.value,
            context={"archive_id": archive_id},
        )


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class StateTransitionEvent:
    """Event representing a state transition."""

    archive_id: int
    """Archive ID."""

    from_state: ArchiveStatus
    """Previous state."""

    to_state: ArchiveStatus
    """New state."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When transition occurred."""

    reason: str = ""
    """Reason for transition."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""

    @property
    def changed(self) -> bool:
        return self.from_state != self.to_state


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """
    Guard for state transitions.

    Ensures transitions are valid and provides reason for denial.
    """

    @staticmethod
    def can_transition(
        from_state: ArchiveStatus,
        to_state: ArchiveStatus,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Returns:
            Tuple of (allowed, reason)
        """
        # Same state is always valid (idempotent)
        if from_state == to_state:
            return True, "Same state"

        if to_state in VALID_TRANSITIONS.get(from_state, set()):
            return True, "Valid transition"

        if from_state.is_terminal:
            return False, f"Cannot transition from terminal state {from_state.value}"

        return False, f"Invalid transition: {from_state.value} -> {to_state.value}"

    @staticmethod
    def validate_archive_for_state(
        archive: ArchiveRecord,
        target_state: ArchiveStatus,
        fingerprint: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Validate archive data for target state.

        Returns:
            Tuple of (valid, reason)
        """
        if target_state == ArchiveStatus.STORED:
            if not (fingerprint or archive.content_hash):
                return False, "Missing content fingerprint for STORED state"

        if target_state == ArchiveStatus.PROCESSED:
            if not archive.content_hash:
                return False, "Missing content fingerprint for PROCESSED state"

        return True, "Archive valid for state"


# ============================================================
# ARCHIVE STATE MACHINE
# ============================================================

class ArchiveStateMachine:
    """
    State machine for one archive.

    The current status is re-read inside the transaction of every
    transition, so two machines for the same archive never
    overwrite each other with a stale view.
    """

    def __init__(
        self,
        archive_id: int,
        session_factory: SessionFactory,
        initial_status: Optional[ArchiveStatus] = None,
    ):
        """
        Initialize state machine.

        Args:
            archive_id: Archive to manage
            session_factory: Relational store sessions
            initial_status: Last known status, if already loaded
        """
        self._archive_id = archive_id
        self._session_factory = session_factory
        self._status = initial_status
        self._history: List[StateTransitionEvent] = []
        self._listeners: List[Callable[[StateTransitionEvent], None]] = []

    @property
    def archive_id(self) -> int:
        return self._archive_id

    @property
    def current_state(self) -> ArchiveStatus:
        """Current archive state, loaded on first access."""
        if self._status is None:
            with transaction_scope(self._session_factory) as session:
                archive = ArchiveRepository(session).get_or_raise(self._archive_id)
                self._status = archive.archive_status
        return self._status

    @property
    def history(self) -> List[StateTransitionEvent]:
        """Get transition history."""
        return list(self._history)

    def add_listener(self, listener: Callable[[StateTransitionEvent], None]) -> None:
        """Add a transition listener."""
        self._listeners.append(listener)

    def transition_to(
        self,
        target_state: ArchiveStatus,
        reason: str = "",
        fingerprint: Optional[str] = None,
        error: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> StateTransitionEvent:
        """
        Transition to a new state and persist it.

        Args:
            target_state: Target state
            reason: Reason for transition
            fingerprint: Content digest recorded with the transition
            error: Structured error recorded with the transition
            **fields: Extra archive columns to update

        Returns:
            StateTransitionEvent

        Raises:
            InvalidArchiveTransitionError: If transition is not allowed
        """
        with transaction_scope(self._session_factory) as session:
            repository = ArchiveRepository(session)
            archive = repository.get_or_raise(self._archive_id)
            current = archive.archive_status

            allowed, why = TransitionGuard.can_transition(current, target_state)
            if allowed:
                allowed, why = TransitionGuard.validate_archive_for_state(archive, target_state, fingerprint)
            if not allowed:
                self._status = current
                raise InvalidArchiveTransitionError(self._archive_id, current, target_state, why)

            # Same state - no-op
            if current == target_state:
                self._status = current
                return StateTransitionEvent(
                    archive_id=self._archive_id,
                    from_state=current,
                    to_state=target_state,
                    reason="No change",
                )

            values = dict(fields)
            if fingerprint:
                values["content_hash"] = fingerprint
            if error is not None:
                values["error"] = error
            repository.update_status(self._archive_id, target_state, **values)

        event = StateTransitionEvent(
            archive_id=self._archive_id,
            from_state=current,
            to_state=target_state,
            reason=reason,
            details={k: v for k, v in values.items() if isinstance(v, (str, int, dict))},
        )
        self._status = target_state
        self._history.append(event)

        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"State listener error: {e}")

        logger.info(
            f"Archive {self._archive_id}: "
            f"{event.from_state.value} -> {event.to_state.value} ({reason})"
        )
        return event

    # --------------------------------------------------------
    # CONVENIENCE METHODS
    # --------------------------------------------------------

    def mark_submitted(self, reason: str = "Archive accepted") -> StateTransitionEvent:
        return self.transition_to(ArchiveStatus.SUBMITTED, reason)

    def mark_stored(
        self,
        fingerprint: str,
        blob_key: str,
        size_bytes: Optional[int] = None,
        reason: str = "Archive stored",
    ) -> StateTransitionEvent:
        fields: Dict[str, Any] = {"blob_key": blob_key}
        if size_bytes is not None:
            fields["size_bytes"] = size_bytes
        return self.transition_to(ArchiveStatus.STORED, reason, fingerprint=fingerprint, **fields)

    def mark_processing(self, reason: str = "Archive parsed") -> StateTransitionEvent:
        return self.transition_to(ArchiveStatus.PROCESSING, reason)

    def mark_processed(self, reason: str = "Extraction complete") -> StateTransitionEvent:
        return self.transition_to(ArchiveStatus.PROCESSED, reason)

    def mark_invalid(self, code: str, message: str = "") -> StateTransitionEvent:
        """Mark the archive invalid, recording the error code."""
        payload = error_payload(code, message)
        return self.transition_to(ArchiveStatus.INVALID, payload["code"], error=payload)

    # --------------------------------------------------------
    # STATE QUERIES
    # --------------------------------------------------------

    def is_terminal(self) -> bool:
        return self.current_state.is_terminal


__all__ = [
    "VALID_TRANSITIONS",
    "InvalidArchiveTransitionError",
    "StateTransitionEvent",
    "TransitionGuard",
    "ArchiveStateMachine",
]
