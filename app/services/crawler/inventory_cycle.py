from typing import Iterable, List

from pydantic import BaseModel, Field

from app.db.models import SearchClass
from app.providers.cowin_fetcher import (
    CowinFetcher,
    FetchResult,
    WorkItem,
    build_work_items,
)
from app.services.crawler.classifier import classify
from app.services.notifications.slot_notification_service import (
    DispatchReport,
    SlotNotificationService,
)
from app.services.registry.area_registry import AreaRegistry
from app.utils.errors import MalformedResponseError
from app.utils.logging import get_logger

logger = get_logger()

# PIN areas are swept before districts, each as its own sequential batch
SEARCH_CLASS_ORDER = (SearchClass.PIN, SearchClass.DISTRICT)


class CycleReport(BaseModel):
    dates: List[str] = Field(default_factory=list)
    areas: int = 0
    fetches: int = 0
    fetch_failures: int = 0
    malformed: int = 0
    buckets: int = 0
    dispatch: DispatchReport = Field(default_factory=DispatchReport)


class InventoryCycle:
    """One sweep: fetch every active area for every date, classify, notify."""

    def __init__(
        self,
        registry: AreaRegistry,
        fetcher: CowinFetcher,
        dispatcher: SlotNotificationService,
    ):
        self.registry = registry
        self.fetcher = fetcher
        self.dispatcher = dispatcher

    async def run(self, dates: List[str]) -> CycleReport:
        report = CycleReport(dates=list(dates))

        for search_class in SEARCH_CLASS_ORDER:
            try:
                areas = self.registry.list_active_areas(search_class)
            except Exception as e:
                logger.error(
                    "Failed to list active areas",
                    search_class=search_class.value,
                    error=str(e),
                )
                continue

            report.areas += len(areas)
            logger.info(
                f"Got {len(areas)} {search_class.value} areas to crawl",
                dates=dates,
            )
            await self._run_batch(build_work_items(areas, dates), report)

        return report

    async def _run_batch(self, items: Iterable[WorkItem], report: CycleReport) -> None:
        async for result in self.fetcher.fetch_batch(items):
            report.fetches += 1
            if not result.ok:
                report.fetch_failures += 1
                continue

            try:
                await self._process(result, report)
            except Exception as e:
                logger.error(
                    "Unexpected error while processing area",
                    area=str(result.item.area),
                    date=result.item.date,
                    error=str(e),
                    exc_info=True,
                )

    async def _process(self, result: FetchResult, report: CycleReport) -> None:
        area = result.item.area
        try:
            buckets = classify(result.payload)
        except MalformedResponseError as e:
            report.malformed += 1
            logger.error(
                "Error occured while skimming slot details",
                area=str(area),
                date=result.item.date,
                error=e.message,
            )
            try:
                self.registry.record_fetch_failure(area)
            except Exception as db_error:
                logger.error(
                    "Failed to record query status", area=str(area), error=str(db_error)
                )
            return

        buckets = {bucket: records for bucket, records in buckets.items() if records}
        if not buckets:
            logger.info("No slots found", area=str(area), date=result.item.date)
            return

        logger.info(
            "Found slots",
            area=str(area),
            date=result.item.date,
            buckets=len(buckets),
            slots=sum(len(records) for records in buckets.values()),
        )
        report.buckets += len(buckets)
        report.dispatch.merge(await self.dispatcher.dispatch(area, buckets))
