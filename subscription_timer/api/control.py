"""Clock control API for test orchestration.

Implements:
- GET /control/time - Current clock time
- POST /control/time/advance - Fast-forward virtual time
"""

from fastapi import APIRouter, Depends, HTTPException

from subscription_timer.api.deps import get_time_controller
from subscription_timer.logging_config import get_logger
from subscription_timer.models import (
    AdvanceTimeRequest,
    AdvanceTimeResponse,
    TimeStatusResponse,
)

logger = get_logger(__name__)
router = APIRouter(tags=["Control API"], prefix="/control")


@router.get(
    "/time",
    response_model=TimeStatusResponse,
    summary="Get clock time",
)
async def get_time(time_controller=Depends(get_time_controller)) -> TimeStatusResponse:
    """Current time of the service clock and whether it is virtual."""
    return TimeStatusResponse(
        mode=time_controller.mode,
        current_time_millis=time_controller.get_current_time_millis(),
        current_time=time_controller.now(),
    )


@router.post(
    "/time/advance",
    response_model=AdvanceTimeResponse,
    summary="Advance virtual time",
)
def advance_time(
    request: AdvanceTimeRequest,
    time_controller=Depends(get_time_controller),
) -> AdvanceTimeResponse:
    """Advance the virtual clock, running countdown ticks and refreshes that fall due.

    Raises:
        400: Negative time parameters
        409: The service runs on the system clock
    """
    logger.info(
        "advance_time_request",
        days=request.days,
        hours=request.hours,
        minutes=request.minutes,
        seconds=request.seconds,
    )

    if time_controller.mode != "virtual":
        raise HTTPException(
            status_code=409,
            detail={
                "error": "clock_not_virtual",
                "message": "Time can only be advanced when clock.mode is virtual",
            },
        )

    try:
        result = time_controller.advance_time(
            days=request.days or 0,
            hours=request.hours or 0,
            minutes=request.minutes or 0,
            seconds=request.seconds or 0,
        )
    except ValueError as e:
        logger.error("invalid_time_request", error=str(e))
        raise HTTPException(
            status_code=400,
            detail={
                "error": "validation_failed",
                "message": str(e),
            },
        )

    logger.info(
        "advance_time_success",
        previous_time=result["old_time_millis"],
        current_time=result["new_time_millis"],
        tasks_fired=result["tasks_fired"],
    )

    return AdvanceTimeResponse(
        previous_time_millis=result["old_time_millis"],
        current_time_millis=result["new_time_millis"],
        advanced_by_millis=result["time_advanced_millis"],
        tasks_fired=result["tasks_fired"],
        message=(
            f"Advanced time by {request.days or 0} days, {request.hours or 0} hours, "
            f"{request.minutes or 0} minutes, {request.seconds or 0} seconds"
        ),
    )
