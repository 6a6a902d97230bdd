from datetime import datetime
from typing import Optional

from pydantic import Field

from app.db.models import AreaQueryStatus, SearchClass
from app.schemas.camel_base_model import CamelCaseBaseModel


class AreaStatusResponse(CamelCaseBaseModel):
    """Query health of one watched area."""

    search_class: SearchClass
    search_value: str
    last_queried_at: Optional[datetime] = None
    last_queried_status: Optional[bool] = None
    query_fail_count: int = 0
    is_excluded: bool = Field(
        default=False,
        description="Area reached the failure threshold and is no longer polled",
    )

    @classmethod
    def from_status(
        cls, status: AreaQueryStatus, failure_threshold: int
    ) -> "AreaStatusResponse":
        return cls(
            search_class=status.search_class,
            search_value=status.search_value,
            last_queried_at=status.last_queried_at,
            last_queried_status=status.last_queried_status,
            query_fail_count=status.query_fail_count,
            is_excluded=status.query_fail_count >= failure_threshold,
        )


class CycleEnqueueResponse(CamelCaseBaseModel):
    task_id: str
    request_id: str
