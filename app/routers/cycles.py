from fastapi import APIRouter, Request, status

from app.schemas.area_schemas import CycleEnqueueResponse
from app.tasks.cron.inventory_cycle import inventory_cycle_task
from app.utils.logging import get_logger
from app.utils.responses import ResponseBuilder

cycles_router = APIRouter()
logger = get_logger()


@cycles_router.post("/")
async def trigger_cycle(request: Request):
    """Enqueue an inventory cycle. It is skipped by the worker if one is already running."""
    request_id = request.state.request_id
    result = inventory_cycle_task.delay(request_id)
    logger.info("Inventory cycle enqueued", task_id=result.id)

    return ResponseBuilder.success(
        request=request,
        data=CycleEnqueueResponse(
            task_id=str(result.id), request_id=request_id
        ).model_dump(by_alias=True),
        message="Inventory cycle enqueued",
        status_code=status.HTTP_202_ACCEPTED,
    )
