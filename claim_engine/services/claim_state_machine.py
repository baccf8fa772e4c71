"""
Claim lifecycle transitions.

The table below is the only source of truth for which status a claim may
move to, on which event, and under which guard. Persisting the new status
and its history row is left to the caller (ClaimLedger).

Lifecycle:
    DRAFT -> SCRUBBED | READY
    SCRUBBED -> READY | DRAFT
    READY -> SUBMITTED | SCRUBBED | DRAFT
    SUBMITTED -> ACCEPTED | DENIED
    ACCEPTED -> DENIED
    DENIED -> APPEALED
    APPEALED -> ACCEPTED | DENIED | APPEALED (re-appeal after a denied appeal)
    any status except PAID -> PAID (automatic, on payment in full)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from claim_engine.core.enums import AppealStatus, ClaimStatus, ScrubStatus
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)


class TransitionEvent(str, Enum):
    """What happened to the claim; each (status, event) pair has one target."""

    SCRUB_PASSED = "scrub_passed"
    SCRUB_FAILED = "scrub_failed"
    EDIT = "edit"
    SUBMIT = "submit"
    ACCEPT = "accept"
    DENY = "deny"
    APPEAL = "appeal"
    APPEAL_APPROVED = "appeal_approved"
    APPEAL_DENIED = "appeal_denied"
    PAYMENT_COMPLETE = "payment_complete"


@dataclass
class TransitionContext:
    """
    Context for a transition attempt.

    metadata carries what guards read: "scrub_status" for submission and
    "latest_appeal_status" for re-appeals.
    """

    claim_id: str
    current_status: ClaimStatus
    target_status: ClaimStatus
    event: TransitionEvent
    triggered_by: Optional[str] = None
    reason: Optional[str] = None
    automatic: bool = False
    metadata: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Guard = Callable[[TransitionContext], Optional[str]]


@dataclass
class Transition:
    """One allowed edge of the lifecycle graph."""

    from_status: ClaimStatus
    to_status: ClaimStatus
    event: TransitionEvent
    requires_reason: bool = False
    auto_transition: bool = False  # Only the system may trigger it
    api_allowed: bool = False  # Reachable through the generic status endpoint
    guard: Optional[Guard] = None


@dataclass
class TransitionResult:
    """Outcome of validate_transition; error is set when success is False."""

    success: bool
    from_status: ClaimStatus
    to_status: Optional[ClaimStatus] = None
    error: Optional[str] = None
    transition: Optional[Transition] = None


# =============================================================================
# Guards
# =============================================================================


def require_scrub_without_errors(context: TransitionContext) -> Optional[str]:
    scrub_status = context.metadata.get("scrub_status")
    if scrub_status is None:
        return "Claim must be scrubbed before it can move on"
    if ScrubStatus(scrub_status) == ScrubStatus.ERRORS:
        return "Claim has unresolved scrub errors"
    return None


def require_prior_appeal_denied(context: TransitionContext) -> Optional[str]:
    latest = context.metadata.get("latest_appeal_status")
    if latest is None or AppealStatus(latest) != AppealStatus.DENIED:
        return "Claim can only be re-appealed after its previous appeal was denied"
    return None


# =============================================================================
# Lifecycle Table
# =============================================================================


VALID_TRANSITIONS: list[Transition] = [
    # Scrub cycle
    Transition(ClaimStatus.DRAFT, ClaimStatus.SCRUBBED, TransitionEvent.SCRUB_FAILED),
    Transition(ClaimStatus.READY, ClaimStatus.SCRUBBED, TransitionEvent.SCRUB_FAILED),
    Transition(
        ClaimStatus.DRAFT,
        ClaimStatus.READY,
        TransitionEvent.SCRUB_PASSED,
        guard=require_scrub_without_errors,
    ),
    Transition(
        ClaimStatus.SCRUBBED,
        ClaimStatus.READY,
        TransitionEvent.SCRUB_PASSED,
        guard=require_scrub_without_errors,
    ),
    Transition(ClaimStatus.SCRUBBED, ClaimStatus.DRAFT, TransitionEvent.EDIT, api_allowed=True),
    Transition(ClaimStatus.READY, ClaimStatus.DRAFT, TransitionEvent.EDIT, api_allowed=True),

    # Submission
    Transition(
        ClaimStatus.READY,
        ClaimStatus.SUBMITTED,
        TransitionEvent.SUBMIT,
        guard=require_scrub_without_errors,
    ),

    # Payer response
    Transition(ClaimStatus.SUBMITTED, ClaimStatus.ACCEPTED, TransitionEvent.ACCEPT, api_allowed=True),
    Transition(ClaimStatus.SUBMITTED, ClaimStatus.DENIED, TransitionEvent.DENY, requires_reason=True),
    Transition(ClaimStatus.ACCEPTED, ClaimStatus.DENIED, TransitionEvent.DENY, requires_reason=True),
    Transition(ClaimStatus.APPEALED, ClaimStatus.DENIED, TransitionEvent.DENY, requires_reason=True),

    # Appeals
    Transition(ClaimStatus.DENIED, ClaimStatus.APPEALED, TransitionEvent.APPEAL),
    Transition(
        ClaimStatus.APPEALED,
        ClaimStatus.APPEALED,
        TransitionEvent.APPEAL,
        guard=require_prior_appeal_denied,
    ),
    Transition(ClaimStatus.APPEALED, ClaimStatus.ACCEPTED, TransitionEvent.APPEAL_APPROVED),
    Transition(ClaimStatus.APPEALED, ClaimStatus.DENIED, TransitionEvent.APPEAL_DENIED),
] + [
    # Payment in full closes the claim from anywhere
    Transition(status, ClaimStatus.PAID, TransitionEvent.PAYMENT_COMPLETE, auto_transition=True)
    for status in ClaimStatus
    if status != ClaimStatus.PAID
]


# =============================================================================
# State Machine
# =============================================================================


class ClaimStateMachine:
    """Lookup and validation over a lifecycle table, plus per-event callbacks."""

    def __init__(self, transitions: Optional[list[Transition]] = None):
        self._transitions: dict[tuple[ClaimStatus, TransitionEvent], Transition] = {}
        self._from_status_map: dict[ClaimStatus, list[Transition]] = {}
        self._callbacks: dict[TransitionEvent, list[Callable]] = {}

        self._build_transition_maps(transitions or VALID_TRANSITIONS)

    def _build_transition_maps(self, transitions: list[Transition]) -> None:
        for transition in transitions:
            key = (transition.from_status, transition.event)
            self._transitions[key] = transition
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(self, status: ClaimStatus) -> list[Transition]:
        return self._from_status_map.get(status, [])

    def get_next_statuses(self, status: ClaimStatus) -> list[ClaimStatus]:
        """Distinct statuses reachable in one step, in definition order."""
        seen: list[ClaimStatus] = []
        for transition in self.get_valid_transitions(status):
            if transition.to_status not in seen:
                seen.append(transition.to_status)
        return seen

    def can_transition(self, from_status: ClaimStatus, to_status: ClaimStatus) -> bool:
        return any(t.to_status == to_status for t in self.get_valid_transitions(from_status))

    def get_transition(
        self,
        from_status: ClaimStatus,
        event: TransitionEvent,
    ) -> Optional[Transition]:
        return self._transitions.get((from_status, event))

    def find_api_transition(
        self,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
    ) -> Optional[Transition]:
        """Transition a caller may request directly by target status."""
        for transition in self.get_valid_transitions(from_status):
            if transition.to_status == to_status and transition.api_allowed:
                return transition
        return None

    def validate_transition(self, context: TransitionContext) -> TransitionResult:
        """
        Validate a transition attempt.

        Checks, in order: the (status, event) pair exists, the target
        matches, system-only transitions come from the system, a reason is
        present when required, and the guard passes.
        """
        transition = self.get_transition(context.current_status, context.event)

        if not transition:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=f"Claim in {context.current_status.value} status has no {context.event.value} transition",
            )

        if context.target_status != transition.to_status:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=(
                    f"Event {context.event.value} leads to {transition.to_status.value}, "
                    f"not {context.target_status.value}"
                ),
            )

        if transition.auto_transition and not context.automatic:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=f"Status {transition.to_status.value} is set automatically and cannot be requested",
            )

        if transition.requires_reason and not context.reason:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=f"A reason is required to move a claim to {transition.to_status.value}",
            )

        if transition.guard:
            guard_error = transition.guard(context)
            if guard_error:
                return TransitionResult(
                    success=False,
                    from_status=context.current_status,
                    error=guard_error,
                )

        return TransitionResult(
            success=True,
            from_status=context.current_status,
            to_status=transition.to_status,
            transition=transition,
        )

    def execute_transition(self, context: TransitionContext) -> TransitionResult:
        """
        Validate, then run the callbacks registered for the event.

        A raising callback is logged; the transition still stands.
        """
        result = self.validate_transition(context)
        if not result.success:
            logger.warning(f"Rejected {context.event.value} for claim {context.claim_id}: {result.error}")
            return result

        for callback in self._callbacks.get(context.event, []):
            try:
                callback(context, result)
            except Exception as e:
                logger.error(f"Callback for {context.event.value} on claim {context.claim_id} failed: {type(e).__name__}")

        logger.info(
            f"Claim {context.claim_id}: {context.current_status.value} -> {result.to_status.value} "
            f"on {context.event.value}"
        )
        return result

    def register_callback(
        self,
        event: TransitionEvent,
        callback: Callable[[TransitionContext, TransitionResult], None],
    ) -> None:
        self._callbacks.setdefault(event, []).append(callback)

    def unregister_callback(self, event: TransitionEvent, callback: Callable) -> None:
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)


# =============================================================================
# Status Helpers
# =============================================================================


def is_terminal_status(status: ClaimStatus) -> bool:
    """Paid claims accept no further events."""
    return status == ClaimStatus.PAID


def is_editable_status(status: ClaimStatus) -> bool:
    """Line items may only change before submission."""
    return status in (ClaimStatus.DRAFT, ClaimStatus.SCRUBBED, ClaimStatus.READY)


def get_status_display_name(status: ClaimStatus) -> str:
    display_names = {
        ClaimStatus.DRAFT: "Draft",
        ClaimStatus.SCRUBBED: "Scrubbed",
        ClaimStatus.READY: "Ready to Submit",
        ClaimStatus.SUBMITTED: "Submitted",
        ClaimStatus.ACCEPTED: "Accepted",
        ClaimStatus.DENIED: "Denied",
        ClaimStatus.APPEALED: "Under Appeal",
        ClaimStatus.PAID: "Paid",
    }
    return display_names.get(status, status.value)


# =============================================================================
# Shared Instance
# =============================================================================


_state_machine: Optional[ClaimStateMachine] = None


def get_claim_state_machine() -> ClaimStateMachine:
    """Process-wide machine over the default lifecycle table."""
    global _state_machine
    if _state_machine is None:
        _state_machine = ClaimStateMachine()
    return _state_machine
