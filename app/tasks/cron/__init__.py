from .inventory_cycle import inventory_cycle_task

__all__ = [
    "inventory_cycle_task",
]
