"""
FastAPI Dependencies
Request context and service construction
Source: https://fastapi.tiangolo.com/tutorial/dependencies/

Authentication happens upstream; the gateway forwards the tenant and user
as headers.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from claim_engine.catalogs import CatalogRepository
from claim_engine.core.config import ClaimsSettings, get_claims_settings
from claim_engine.db.connection import get_session
from claim_engine.services.appeal_tracker import AppealTracker
from claim_engine.services.claims_service import ClaimsService
from claim_engine.services.collaborators import (
    AuditSink,
    EventEmitter,
    IdGenerator,
    LoggingAuditSink,
    LoggingEventEmitter,
    UuidIdGenerator,
)
from claim_engine.services.era_reconciler import EraReconciler
from claim_engine.services.underpayment_analyzer import UnderpaymentAnalyzer


@dataclass(frozen=True)
class RequestContext:
    tenant_id: str
    user_id: Optional[str] = None


async def get_request_context(
    x_tenant_id: str = Header(..., alias="X-Tenant-ID", min_length=1, max_length=36),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID", max_length=36),
) -> RequestContext:
    return RequestContext(tenant_id=x_tenant_id, user_id=x_user_id)


# =============================================================================
# Collaborators (overridable through app.dependency_overrides)
# =============================================================================

_id_generator = UuidIdGenerator()
_audit_sink = LoggingAuditSink()
_event_emitter = LoggingEventEmitter()


def get_id_generator() -> IdGenerator:
    return _id_generator


def get_audit_sink() -> AuditSink:
    return _audit_sink


def get_event_emitter() -> EventEmitter:
    return _event_emitter


def get_engine_settings() -> ClaimsSettings:
    return get_claims_settings()


# =============================================================================
# Services
# =============================================================================


def get_claims_service(
    session: AsyncSession = Depends(get_session),
    id_generator: IdGenerator = Depends(get_id_generator),
    audit_sink: AuditSink = Depends(get_audit_sink),
    event_emitter: EventEmitter = Depends(get_event_emitter),
    settings: ClaimsSettings = Depends(get_engine_settings),
) -> ClaimsService:
    return ClaimsService(
        session,
        id_generator=id_generator,
        audit_sink=audit_sink,
        event_emitter=event_emitter,
        settings=settings,
    )


def get_era_reconciler(
    session: AsyncSession = Depends(get_session),
    id_generator: IdGenerator = Depends(get_id_generator),
    audit_sink: AuditSink = Depends(get_audit_sink),
    event_emitter: EventEmitter = Depends(get_event_emitter),
    settings: ClaimsSettings = Depends(get_engine_settings),
) -> EraReconciler:
    return EraReconciler(
        session,
        id_generator=id_generator,
        audit_sink=audit_sink,
        event_emitter=event_emitter,
        settings=settings,
    )


def get_appeal_tracker(
    session: AsyncSession = Depends(get_session),
    id_generator: IdGenerator = Depends(get_id_generator),
    audit_sink: AuditSink = Depends(get_audit_sink),
    event_emitter: EventEmitter = Depends(get_event_emitter),
    settings: ClaimsSettings = Depends(get_engine_settings),
) -> AppealTracker:
    return AppealTracker(
        session,
        id_generator=id_generator,
        audit_sink=audit_sink,
        event_emitter=event_emitter,
        settings=settings,
    )


def get_underpayment_analyzer(
    session: AsyncSession = Depends(get_session),
    id_generator: IdGenerator = Depends(get_id_generator),
    audit_sink: AuditSink = Depends(get_audit_sink),
    settings: ClaimsSettings = Depends(get_engine_settings),
) -> UnderpaymentAnalyzer:
    return UnderpaymentAnalyzer(
        session,
        id_generator=id_generator,
        audit_sink=audit_sink,
        settings=settings,
    )


def get_catalog_repository(session: AsyncSession = Depends(get_session)) -> CatalogRepository:
    return CatalogRepository(session)
