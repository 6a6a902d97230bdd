from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = settings.redis_url
result_backend = settings.redis_url

# Task Discovery
include = ["app.tasks"]

# Timezone Configuration
timezone = settings.TIMEZONE
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = settings.CYCLE_LOCK_TTL_SECONDS
task_soft_time_limit = settings.CYCLE_LOCK_TTL_SECONDS - 5 * 60

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Cycles are never retried within a run, the next beat tick is the retry
task_acks_late = False
task_max_retries = 0

# Clock-aligned cadence, e.g. :00, :05, :10 for a 5 minute interval.
# A tick still queued when the next one is due expires instead of running late.
beat_schedule = {
    "inventory-cycle": {
        "task": "app.tasks.cron.inventory_cycle.inventory_cycle_task",
        "schedule": crontab(minute=f"*/{settings.CYCLE_INTERVAL_MINUTES}"),
        "args": ("inventory_cycle_cron",),
        "options": {"expires": settings.CYCLE_INTERVAL_MINUTES * 60},
    },
}

# Default Queue
task_default_queue = "slotnotifier"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
