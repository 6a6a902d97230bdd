import pytest
from unittest.mock import patch

from celery.schedules import crontab
from pydantic import ValidationError

from app.config import celeryconfig
from app.config.settings import Settings, settings
from app.start_apps import celery_worker_command
from app.tasks.cron.inventory_cycle import run_initial_cycle

INTERVAL_SECONDS = settings.CYCLE_INTERVAL_MINUTES * 60


class TestWorkerRuntime:
    """Overlapping triggers must reach the cycle lock while a cycle is running."""

    def test_worker_has_a_spare_pool_slot(self):
        cmd = celery_worker_command()

        assert "--beat" in cmd
        (concurrency,) = [arg for arg in cmd if arg.startswith("--concurrency=")]
        assert int(concurrency.split("=", 1)[1]) >= 2

    def test_single_slot_worker_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(WORKER_CONCURRENCY=1)

    def test_one_reserved_message_per_process(self):
        assert celeryconfig.worker_prefetch_multiplier == 1


class TestBeatSchedule:
    def test_tick_expires_after_one_interval(self):
        entry = celeryconfig.beat_schedule["inventory-cycle"]

        assert entry["task"] == "app.tasks.cron.inventory_cycle.inventory_cycle_task"
        assert entry["options"]["expires"] == INTERVAL_SECONDS

    def test_cadence_is_clock_aligned(self):
        entry = celeryconfig.beat_schedule["inventory-cycle"]

        assert entry["schedule"] == crontab(
            minute=f"*/{settings.CYCLE_INTERVAL_MINUTES}"
        )

    def test_startup_cycle_expires_like_a_tick(self):
        with patch("app.tasks.cron.inventory_cycle.inventory_cycle_task") as task:
            run_initial_cycle()

        task.apply_async.assert_called_once_with(
            args=("inventory_cycle_startup",), expires=INTERVAL_SECONDS
        )
