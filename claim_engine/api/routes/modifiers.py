"""
Modifier Reference Endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends

from claim_engine.api.config import settings
from claim_engine.api.deps import RequestContext, get_catalog_repository, get_request_context
from claim_engine.catalogs import CatalogRepository
from claim_engine.services.modifier_advisor import get_all_modifier_rules, get_modifier_info
from claim_engine.utils.errors import NotFoundError

router = APIRouter(
    prefix=f"{settings.API_PREFIX}/modifiers",
    tags=["modifiers"],
)


@router.get("")
async def list_modifier_rules(
    ctx: RequestContext = Depends(get_request_context),
    catalogs: CatalogRepository = Depends(get_catalog_repository),
) -> dict[str, Any]:
    catalog = await catalogs.load(ctx.tenant_id)
    return get_all_modifier_rules(catalog.modifier_rules)


@router.get("/{cpt}")
async def get_modifier_rules_for_cpt(
    cpt: str,
    ctx: RequestContext = Depends(get_request_context),
    catalogs: CatalogRepository = Depends(get_catalog_repository),
) -> dict[str, Any]:
    catalog = await catalogs.load(ctx.tenant_id)
    info = get_modifier_info(cpt.strip().upper(), catalog.modifier_rules)
    if info is None:
        raise NotFoundError("Modifier rules for CPT", cpt)
    return info
