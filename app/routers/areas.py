from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.db.session import get_sync_session
from app.schemas.area_schemas import AreaStatusResponse
from app.services.registry.area_registry import get_area_registry
from app.utils.responses import ResponseBuilder

areas_router = APIRouter()


@areas_router.get("/status")
async def list_area_statuses(
    request: Request,
    db: Annotated[Session, Depends(get_sync_session)],
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(50, ge=1, le=200, description="Items per page"),
):
    """
    Query health of every polled area, most failing first.

    Areas at or above the failure threshold are flagged as excluded.
    """
    registry = get_area_registry(db)
    statuses, total = registry.list_area_statuses(page=page, per_page=per_page)

    data = [
        AreaStatusResponse.from_status(
            status, registry.failure_threshold
        ).model_dump(by_alias=True)
        for status in statuses
    ]

    return ResponseBuilder.paginated(
        request=request,
        data=data,
        page=page,
        per_page=per_page,
        total=total,
        message="Area statuses retrieved successfully",
    )
