import asyncio
import enum
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import LockError, RedisError

from app.config.settings import settings
from app.services.crawler.inventory_cycle import CycleReport
from app.utils.datetime_utils import to_zone, utc_now
from app.utils.errors import SchedulingOverrun
from app.utils.logging import get_logger

logger = get_logger()


class CycleState(enum.Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class CycleToken(Protocol):
    async def try_acquire(self) -> bool: ...

    async def release(self) -> None: ...


class LocalCycleToken:
    """In-process token for a single scheduler instance."""

    def __init__(self):
        self.state = CycleState.IDLE
        self._lock = asyncio.Lock()

    async def try_acquire(self) -> bool:
        async with self._lock:
            if self.state is CycleState.RUNNING:
                return False
            self.state = CycleState.RUNNING
            return True

    async def release(self) -> None:
        async with self._lock:
            self.state = CycleState.IDLE


class RedisCycleToken:
    """
    Token shared by every worker through a Redis lock.

    The lock carries a TTL so a worker that dies mid-cycle cannot keep
    later cycles out forever.
    """

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        key: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.client = client or aioredis.Redis.from_url(settings.redis_url)
        self.key = key or settings.CYCLE_LOCK_KEY
        self.ttl_seconds = ttl_seconds or settings.CYCLE_LOCK_TTL_SECONDS
        self._lock = self.client.lock(
            self.key, timeout=self.ttl_seconds, blocking=False
        )

    async def try_acquire(self) -> bool:
        return bool(await self._lock.acquire())

    async def release(self) -> None:
        try:
            await self._lock.release()
        except LockError as e:
            # Lock already expired or was taken over after the TTL
            logger.warning("Cycle lock was not held at release", key=self.key, error=str(e))

    async def close(self) -> None:
        await self.client.aclose()


def cycle_dates(
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
    lookahead_days: Optional[Iterable[int]] = None,
    fmt: Optional[str] = None,
) -> List[str]:
    """Calendar dates to query, as offsets from today in the configured zone."""
    local_now = to_zone(now or utc_now(), tz_name or settings.TIMEZONE)
    offsets = settings.LOOKAHEAD_DAYS if lookahead_days is None else lookahead_days
    date_format = fmt or settings.COWIN_DATE_FORMAT
    today = local_now.date()
    return [(today + timedelta(days=offset)).strftime(date_format) for offset in offsets]


class CycleScheduler:
    """
    Runs inventory cycles on trigger, never two at once.

    A trigger that arrives while a cycle holds the token is dropped, not
    queued. The token is released when the cycle ends, whether it
    finished or raised.
    """

    def __init__(
        self,
        run_cycle: Callable[[List[str]], Awaitable[CycleReport]],
        token: Optional[CycleToken] = None,
        date_provider: Callable[[], List[str]] = cycle_dates,
    ):
        self.run_cycle = run_cycle
        self.token = token or LocalCycleToken()
        self.date_provider = date_provider

    @asynccontextmanager
    async def hold(self):
        if not await self.token.try_acquire():
            raise SchedulingOverrun()
        try:
            yield
        finally:
            await self.token.release()

    async def trigger(self, request_id: str) -> dict:
        log = logger.bind(request_id=request_id)
        try:
            async with self.hold():
                dates = self.date_provider()
                log.info("Starting inventory cycle", dates=dates)
                report = await self.run_cycle(dates)
        except SchedulingOverrun as e:
            log.warning("Skipping inventory cycle", reason=e.message)
            return {"success": True, "skipped": True, "request_id": request_id}
        except RedisError as e:
            log.error("Cycle lock unavailable", error=str(e))
            return {"success": False, "error": str(e), "request_id": request_id}
        except Exception as e:
            log.error("Inventory cycle failed", error=str(e), exc_info=True)
            return {"success": False, "error": str(e), "request_id": request_id}

        log.info("Inventory cycle completed", **report.model_dump(exclude={"dispatch", "dates"}))
        return {
            "success": True,
            "skipped": False,
            "request_id": request_id,
            "report": report.model_dump(),
        }
