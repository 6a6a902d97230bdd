from typing import Any, AsyncIterator, Iterable, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from app.config.settings import settings
from app.db.models import SearchClass
from app.schemas.slot_schemas import Area
from app.services.registry.area_registry import AreaRegistry
from app.utils.errors import FetchError
from app.utils.logging import get_logger
from app.utils.pacing import Pacer

logger = get_logger()

DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.5",
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:87.0) Gecko/20100101 Firefox/87.0",
    "Origin": "https://www.cowin.gov.in",
    "Referer": "https://www.cowin.gov.in",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}


class WorkItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    area: Area
    date: str


class FetchResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    item: WorkItem
    payload: Any = None
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_work_items(areas: Iterable[Area], dates: List[str]) -> List[WorkItem]:
    """Area-major work list: every date of the first area, then the next area."""
    return [WorkItem(area=area, date=date) for area in areas for date in dates]


class CowinFetcher:
    """Sequential, start-to-start paced client for the public calendar endpoints."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        registry: AreaRegistry,
        pacer: Optional[Pacer] = None,
    ):
        self.client = client
        self.registry = registry
        self.pacer = pacer or Pacer.from_milliseconds(settings.FETCH_DELAY_MS)

    @staticmethod
    def build_request(area: Area, date: str) -> tuple[str, dict]:
        if area.search_class is SearchClass.DISTRICT:
            return settings.COWIN_DISTRICT_PATH, {
                "district_id": area.search_value,
                "date": date,
            }
        return settings.COWIN_PIN_PATH, {"pincode": area.search_value, "date": date}

    async def fetch(self, area: Area, date: str) -> Any:
        """
        Fetch one calendar page for an area and date.

        Raises:
            FetchError: network failure, non-2xx status or a body that isn't JSON
        """
        path, params = self.build_request(area, date)
        try:
            response = await self.client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Calendar request for {area} on {date} returned {e.response.status_code}",
                error_code="FETCH_HTTP_STATUS",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                f"Calendar request for {area} on {date} failed: {e}",
                error_code="FETCH_NETWORK",
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(
                f"Calendar response for {area} on {date} is not JSON",
                error_code="FETCH_BAD_BODY",
                status_code=response.status_code,
            ) from e

    async def fetch_batch(self, items: Iterable[WorkItem]) -> AsyncIterator[FetchResult]:
        """
        Fetch items one after another, yielding a result per item.

        A failed item is recorded against its area and the batch moves on;
        nothing raised by one item reaches the next.
        """
        for item in items:
            await self.pacer.wait()
            try:
                payload = await self.fetch(item.area, item.date)
            except FetchError as e:
                logger.error(
                    "Failed to fetch slot details",
                    area=str(item.area),
                    date=item.date,
                    error=e.message,
                    error_code=e.error_code,
                )
                self._record(item.area, success=False)
                yield FetchResult(item=item, error=e)
                continue

            logger.info("Fetched slot details", area=str(item.area), date=item.date)
            self._record(item.area, success=True)
            yield FetchResult(item=item, payload=payload)

    def _record(self, area: Area, success: bool) -> None:
        try:
            if success:
                self.registry.record_fetch_success(area)
            else:
                self.registry.record_fetch_failure(area)
        except Exception as e:
            logger.error(
                "Failed to record query status",
                area=str(area),
                success=success,
                error=str(e),
            )


def create_cowin_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.COWIN_BASE_URL,
        headers=DEFAULT_HEADERS,
        timeout=settings.FETCH_TIMEOUT_SECONDS,
    )
