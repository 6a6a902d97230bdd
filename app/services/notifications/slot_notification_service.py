import asyncio
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel

from app.config.settings import settings
from app.schemas.slot_schemas import Area, CriteriaBucket, Recipient, SlotRecord
from app.services.notifications.message_builder import (
    MessageLimits,
    build_message_chunks,
)
from app.services.registry.area_registry import AreaRegistry
from app.utils.errors import DeliveryError, RecipientUnreachableError
from app.utils.logging import get_logger
from app.utils.pacing import Pacer

logger = get_logger()


class MessageTransport(Protocol):
    async def send(self, line_user_id: str, text: str) -> None: ...


class DispatchReport(BaseModel):
    buckets: int = 0
    buckets_with_recipients: int = 0
    recipients_notified: int = 0
    messages_sent: int = 0
    delivery_failures: int = 0
    deactivated: int = 0

    def merge(self, other: "DispatchReport") -> None:
        for field in type(self).model_fields:
            setattr(self, field, getattr(self, field) + getattr(other, field))


class SlotNotificationService:
    """
    Delivers classified slots of one area to every matching subscriber.

    Each recipient gets its own delivery job. Jobs are started without
    waiting for earlier ones, at most `max_in_flight` at a time, and every
    single send goes through the shared pacer. `dispatch` joins all jobs
    before returning.
    """

    def __init__(
        self,
        registry: AreaRegistry,
        transport: MessageTransport,
        pacer: Optional[Pacer] = None,
        limits: Optional[MessageLimits] = None,
        max_in_flight: Optional[int] = None,
    ):
        self.registry = registry
        self.transport = transport
        self.pacer = pacer or Pacer.from_milliseconds(settings.SEND_DELAY_MS)
        self.limits = limits or MessageLimits()
        self._slots = asyncio.Semaphore(max_in_flight or settings.MAX_IN_FLIGHT_SENDS)

    async def dispatch(
        self, area: Area, buckets: Dict[CriteriaBucket, List[SlotRecord]]
    ) -> DispatchReport:
        report = DispatchReport()
        jobs: List[asyncio.Task] = []

        for bucket, records in buckets.items():
            if not records:
                continue
            report.buckets += 1

            try:
                recipients = self.registry.match_subscribers(area, bucket)
            except Exception as e:
                logger.error(
                    "Failed to resolve notification recipients",
                    area=str(area),
                    bucket=bucket.describe(),
                    error=str(e),
                )
                continue

            if not recipients:
                continue
            report.buckets_with_recipients += 1

            chunks = build_message_chunks(area, bucket, records, self.limits)
            logger.info(
                "Dispatching slot notification",
                area=str(area),
                bucket=bucket.describe(),
                slots=len(records),
                chunks=len(chunks),
                recipients=len(recipients),
            )

            for recipient in recipients:
                await self._slots.acquire()
                jobs.append(
                    asyncio.create_task(self._deliver(area, recipient, chunks, report))
                )

        results = await asyncio.gather(*jobs, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                report.delivery_failures += 1
                logger.error(
                    "Delivery job crashed", area=str(area), error=str(result)
                )
        return report

    async def _deliver(
        self,
        area: Area,
        recipient: Recipient,
        chunks: List[str],
        report: DispatchReport,
    ) -> None:
        delivered = 0
        try:
            for index, chunk in enumerate(chunks):
                await self.pacer.wait()
                try:
                    await self.transport.send(recipient.line_user_id, chunk)
                except RecipientUnreachableError as e:
                    logger.warning(
                        "Recipient unreachable, deactivating notifications",
                        subscriber_id=recipient.subscriber_id,
                        error=e.message,
                    )
                    report.deactivated += 1
                    self._safe_registry_call(
                        "deactivate_subscriber", recipient.subscriber_id
                    )
                    break
                except DeliveryError as e:
                    report.delivery_failures += 1
                    logger.error(
                        "Failed to deliver notification chunk",
                        subscriber_id=recipient.subscriber_id,
                        chunk=index + 1,
                        chunks=len(chunks),
                        error=e.message,
                    )
                    continue

                delivered += 1
                report.messages_sent += 1

            if delivered:
                report.recipients_notified += 1
                self._safe_registry_call(
                    "increment_delivery_count", recipient.subscriber_id, area
                )
                logger.info(
                    "Sent slot notification",
                    subscriber_id=recipient.subscriber_id,
                    area=str(area),
                    chunks_delivered=delivered,
                )
        finally:
            self._slots.release()

    def _safe_registry_call(self, method: str, *args) -> None:
        try:
            getattr(self.registry, method)(*args)
        except Exception as e:
            logger.error(
                "Registry update after delivery failed", operation=method, error=str(e)
            )
