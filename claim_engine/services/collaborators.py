"""
Collaborator interfaces consumed by the claim engine.

Provides:
- IdGenerator for record ids and claim numbers
- AuditSink for audit-log writes
- EventEmitter for downstream notification fan-out

Default implementations log through loguru; production wiring can pass
anything that satisfies the protocols.
"""

import itertools
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol
from uuid import uuid4

from claim_engine.utils.errors import describe_error
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)


class ClaimEvent(str, Enum):
    """Events emitted for notification fan-out."""

    CREATED = "claim.created"
    UPDATED = "claim.updated"
    STATUS_CHANGED = "claim.status_changed"
    SUBMITTED = "claim.submitted"
    DENIED = "claim.denied"
    PAID = "claim.paid"
    PAYMENT_RECEIVED = "claim.payment_received"


# =============================================================================
# Id Generation
# =============================================================================


class IdGenerator(Protocol):
    def new_id(self) -> str: ...

    def new_claim_number(self) -> str: ...


class UuidIdGenerator:
    """uuid4 ids and CLM-YYYYMMDD-XXXXXX claim numbers."""

    def new_id(self) -> str:
        return str(uuid4())

    def new_claim_number(self) -> str:
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        return f"CLM-{today}-{uuid4().hex[:6].upper()}"


class SequentialIdGenerator:
    """Deterministic generator for tests and fixtures."""

    def __init__(self, prefix: str = "id", claim_prefix: str = "CLM-TEST") -> None:
        self.prefix = prefix
        self.claim_prefix = claim_prefix
        self._ids = itertools.count(1)
        self._claims = itertools.count(1)

    def new_id(self) -> str:
        return f"{self.prefix}-{next(self._ids):06d}"

    def new_claim_number(self) -> str:
        return f"{self.claim_prefix}-{next(self._claims):06d}"


# =============================================================================
# Audit Sink
# =============================================================================


class AuditSink(Protocol):
    async def record(
        self,
        tenant_id: str,
        user_id: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[str],
    ) -> None: ...


class LoggingAuditSink:
    """Writes audit entries to the application log."""

    async def record(
        self,
        tenant_id: str,
        user_id: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[str],
    ) -> None:
        logger.bind(audit=True).info(
            f"AUDIT tenant={tenant_id} user={user_id} action={action} "
            f"resource={resource_type}:{resource_id}"
        )


# =============================================================================
# Event Emitter
# =============================================================================


class EventEmitter(Protocol):
    async def emit(self, event: ClaimEvent, tenant_id: str, payload: dict[str, Any]) -> None: ...


class LoggingEventEmitter:
    """Logs events instead of delivering them."""

    async def emit(self, event: ClaimEvent, tenant_id: str, payload: dict[str, Any]) -> None:
        logger.info(f"Event {event.value} for tenant {tenant_id}: {payload}")


async def emit_safely(
    emitter: EventEmitter,
    event: ClaimEvent,
    tenant_id: str,
    payload: dict[str, Any],
) -> None:
    """Fire-and-forget: emitter failures are logged, never raised."""
    try:
        await emitter.emit(event, tenant_id, payload)
    except Exception as e:
        logger.error(f"Event emitter failed for {event.value}: {describe_error(e)}")


async def record_audit_safely(
    sink: AuditSink,
    tenant_id: str,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str],
) -> None:
    """Audit writes happen after commit; a sink failure must not fail the request."""
    try:
        await sink.record(tenant_id, user_id, action, resource_type, resource_id)
    except Exception as e:
        logger.error(f"Audit sink failed for {action} on {resource_type}:{resource_id}: {describe_error(e)}")


async def publish_claim_change(
    sink: AuditSink,
    emitter: EventEmitter,
    tenant_id: str,
    user_id: Optional[str],
    action: str,
    claim: Any,
    events: list[ClaimEvent],
) -> None:
    """Audit one claim change and emit its events, after the commit."""
    await record_audit_safely(sink, tenant_id, user_id, action, "claim", claim.id)
    payload = {
        "claimId": claim.id,
        "claimNumber": claim.claim_number,
        "status": claim.status.value,
    }
    for event in events:
        await emit_safely(emitter, event, tenant_id, payload)
