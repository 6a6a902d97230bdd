"""
Inventory cycle task.

Runs on the beat cadence (and once when a worker comes up) to:
1. Fetch the slot calendar of every watched PIN code and district
2. Classify available slots by vaccine, age band and dose
3. Notify every matching subscriber over LINE

Only one cycle runs at a time across all workers; overlapping triggers are skipped.
"""

import asyncio

from celery.signals import worker_ready

from app.celery import celery
from app.config.settings import settings
from app.db.session import get_sync_session
from app.providers.cowin_fetcher import CowinFetcher, create_cowin_client
from app.services.crawler.inventory_cycle import InventoryCycle
from app.services.line.line_messaging_service import LineTransport
from app.services.notifications.slot_notification_service import (
    SlotNotificationService,
)
from app.services.registry.area_registry import get_area_registry
from app.services.scheduler.cycle_scheduler import CycleScheduler, RedisCycleToken
from app.utils.context import request_id_scope
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def inventory_cycle_task(self, request_id: str):
    """
    Run one inventory cycle.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_inventory_cycle(request_id))


async def _async_inventory_cycle(request_id: str):
    with request_id_scope(request_id):
        return await _run_cycle(request_id)


async def _run_cycle(request_id: str):
    logger = get_logger()

    for db_session in get_sync_session():
        token = RedisCycleToken()
        try:
            registry = get_area_registry(db_session)
            async with create_cowin_client() as client, LineTransport() as transport:
                cycle = InventoryCycle(
                    registry=registry,
                    fetcher=CowinFetcher(client, registry),
                    dispatcher=SlotNotificationService(registry, transport),
                )
                scheduler = CycleScheduler(cycle.run, token=token)
                return await scheduler.trigger(request_id)

        except Exception as e:
            logger.error("Inventory cycle task failed", error=str(e), exc_info=True)
            return {"success": False, "error": str(e), "request_id": request_id}
        finally:
            await token.close()


@worker_ready.connect
def run_initial_cycle(sender=None, **kwargs):
    """Kick off a cycle right away instead of waiting for the first beat tick."""
    get_logger().info("Worker ready, enqueueing initial inventory cycle")
    inventory_cycle_task.apply_async(
        args=("inventory_cycle_startup",),
        expires=settings.CYCLE_INTERVAL_MINUTES * 60,
    )
