"""
Data tools API endpoints.

Operator-only endpoints for cleaning up account structure:
- Find likely-duplicate accounts (by name and/or address)
- Merge accounts into one multi-location account
- Merge two locations
- Move a location into, or split it out of, a multi-location account
- Lookups and the change log supporting those workflows

Request and response bodies use camelCase keys.
"""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from entity_merge.api.v1.auth import require_operator
from entity_merge.auth.operators import Operator
from entity_merge.core import audit_service
from entity_merge.core.config import get_settings
from entity_merge.core.database import get_db
from entity_merge.core.errors import MergeEngineError
from entity_merge.core.gateway import SqlAlchemyGateway
from entity_merge.core.models import ChangeActionType, ChangeEntityType
from entity_merge.matching.types import GroupingMode
from entity_merge.services.lookup_service import LookupService
from entity_merge.services.merge_service import MergeService
from entity_merge.services.similarity_service import SimilarityService
from entity_merge.services.topology_service import TopologyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/data-tools", tags=["Data Tools"])


def camelize(value: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase."""
    if isinstance(value, dict):
        return {
            (to_camel(k) if isinstance(k, str) else k): camelize(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [camelize(v) for v in value]
    return value


def _http_error(error: MergeEngineError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


# =============================================================================
# Request Models
# =============================================================================

class MergeAccountsRequest(BaseModel):
    """Accounts to fold together; the first is kept unless a primary is given."""
    model_config = ConfigDict(populate_by_name=True)

    account_ids: List[int] = Field(..., alias="accountIds", description="Accounts to merge")
    primary_account_id: Optional[int] = Field(
        None, alias="primaryAccountId", description="Surviving account (defaults to the first id)"
    )


class MergeLocationsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_location_id: int = Field(..., alias="sourceLocationId", description="Location to merge away")
    target_location_id: int = Field(..., alias="targetLocationId", description="Location that survives")


class AddLocationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location_id: int = Field(..., alias="locationId")
    target_account_id: int = Field(..., alias="targetAccountId")


class RemoveLocationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location_id: int = Field(..., alias="locationId")


# =============================================================================
# Detection
# =============================================================================

@router.get("/similarity-candidates")
async def similarity_candidates(
    mode: GroupingMode = Query(GroupingMode.NAME, description="Match by name, address or both"),
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """
    Find groups of accounts that likely represent the same business.

    Groups are sorted by similarity score, then by size.
    """
    service = SimilarityService(SqlAlchemyGateway(db))
    clusters = service.find_candidates(mode)
    return {
        "groups": camelize([cluster.to_dict() for cluster in clusters]),
        "totalGroups": len(clusters),
    }


# =============================================================================
# Structural operations
# =============================================================================

@router.post("/merge-accounts")
async def merge_accounts(
    request: MergeAccountsRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """
    Merge single-location accounts into one multi-location account.

    All locations, agreements, activities and notes move to the primary
    account; the other accounts are deleted. This cannot be undone.
    """
    try:
        result = MergeService.for_session(db).merge_accounts(
            request.account_ids,
            primary_id=request.primary_account_id,
            actor=operator,
        )
    except MergeEngineError as e:
        raise _http_error(e)

    return {"success": True, **camelize(result.to_dict())}


@router.post("/merge-locations")
async def merge_locations(
    request: MergeLocationsRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """Merge the source location into the target location and delete the source."""
    try:
        result = MergeService.for_session(db).merge_locations(
            request.source_location_id,
            request.target_location_id,
            actor=operator,
        )
    except MergeEngineError as e:
        raise _http_error(e)

    return {"success": True, **camelize(result.to_dict())}


@router.post("/add-location-to-multi")
async def add_location_to_multi(
    request: AddLocationRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """Move a single-location account's location into a multi-location account."""
    try:
        result = TopologyService.for_session(db).add_location_to_multi(
            request.location_id,
            request.target_account_id,
            actor=operator,
        )
    except MergeEngineError as e:
        raise _http_error(e)

    return {"success": True, **camelize(result.to_dict())}


@router.post("/remove-location-from-multi")
async def remove_location_from_multi(
    request: RemoveLocationRequest,
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """Split a location out of a multi-location account into a new account."""
    try:
        result = TopologyService.for_session(db).remove_location_from_multi(
            request.location_id,
            actor=operator,
        )
    except MergeEngineError as e:
        raise _http_error(e)

    return {"success": True, **camelize(result.to_dict())}


# =============================================================================
# Lookups
# =============================================================================

@router.get("/multi-location-accounts")
async def multi_location_accounts(
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """Active multi-location accounts, ordered by name."""
    accounts = LookupService(db).list_multi_location_accounts()
    return {"accounts": camelize(accounts)}


@router.get("/search-locations")
async def search_locations(
    q: str = Query("", description="Text matched against location and account fields"),
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """Search locations by name, address, city, state, zip or account name."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    locations = LookupService(db).search_locations(q)
    return {"locations": camelize(locations)}


@router.get("/integrity")
async def integrity(
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """Report orphaned dependent rows and account-type mismatches."""
    report = LookupService(db).integrity_report()
    # orphan keys are "table.column" and stay as-is
    return {
        "ok": report["ok"],
        "orphans": report["orphans"],
        "typeMismatches": camelize(report["type_mismatches"]),
    }


@router.get("/change-log")
async def change_log(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    action_type: Optional[str] = Query(None, description="merge_accounts, merge_locations, add_location, remove_location"),
    entity_type: Optional[str] = Query(None, description="account or location"),
    entity_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_operator),
):
    """Recent structural changes, newest first."""
    valid_actions = {a.value for a in ChangeActionType}
    if action_type and action_type not in valid_actions:
        raise HTTPException(
            status_code=400,
            detail=f"action_type must be one of: {sorted(valid_actions)}",
        )
    valid_entities = {e.value for e in ChangeEntityType}
    if entity_type and entity_type not in valid_entities:
        raise HTTPException(
            status_code=400,
            detail=f"entity_type must be one of: {sorted(valid_entities)}",
        )

    entries = audit_service.get_change_log(
        db,
        limit=limit or get_settings().change_log_default_limit,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    return {"logs": camelize(entries)}
