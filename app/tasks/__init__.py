from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "inventory_cycle_task",
]
