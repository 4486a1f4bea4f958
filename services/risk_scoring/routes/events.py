"""
Task Event Routes
=================

Intake for TaskCompleted events from the task subsystem, over HTTP and
(optionally) Kafka. Both paths enqueue a recalculation and return at once.

Version: 0.1.0
"""

from typing import Any

from aiokafka.structs import ConsumerRecord
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from services.risk_scoring.dependencies import get_recompute_queue
from services.risk_scoring.services.recompute import RecomputeQueue
from shared.auth import User, require_service
from shared.logging import get_logger
from shared.models.risk import TaskCompletedEvent


logger = get_logger(__name__)

router = APIRouter()


class EventAccepted(BaseModel):
    """Acknowledgement for an accepted event."""

    accepted: bool = True
    queued: bool
    pending: int


@router.post(
    "/task-completed",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def task_completed(
    event: TaskCompletedEvent,
    user: User = Depends(require_service),
    queue: RecomputeQueue = Depends(get_recompute_queue),
) -> EventAccepted:
    """
    Accept a TaskCompleted event.

    The recalculation runs in the background; duplicate events for a scope
    already waiting in the queue are coalesced.
    """
    queued = queue.submit_task_completed(event)

    logger.info(
        "task_completed_received",
        user_id=event.user_id,
        framework_id=event.framework_id,
        task_id=event.task_id,
        queued=queued,
        source=user.id,
    )

    return EventAccepted(queued=queued, pending=queue.pending())


async def handle_task_event_message(msg: ConsumerRecord) -> None:
    """Kafka handler for the task-completed topic."""
    payload: Any = msg.value
    event = TaskCompletedEvent.model_validate(payload)
    queued = get_recompute_queue().submit_task_completed(event)

    logger.debug(
        "task_completed_consumed",
        user_id=event.user_id,
        framework_id=event.framework_id,
        offset=msg.offset,
        queued=queued,
    )
