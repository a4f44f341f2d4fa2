from fastapi import APIRouter, Depends

from biolink_app.dependencies import get_counter_service
from biolink_app.schemas.profile import Ack, ViewCount
from biolink_app.services.counter_service import CounterService

router = APIRouter(tags=["counters"])


@router.post("/view/{handle}", response_model=ViewCount)
async def record_view(
    handle: str,
    counter_service: CounterService = Depends(get_counter_service)
):
    """Count a page view and return the new total"""
    return ViewCount(views=await counter_service.record_view(handle))


@router.get("/view/{handle}", response_model=ViewCount)
async def get_views(
    handle: str,
    counter_service: CounterService = Depends(get_counter_service)
):
    """Current view count (0 for a handle never viewed)"""
    return ViewCount(views=await counter_service.get_views(handle))


@router.post("/click/{handle}", response_model=Ack)
async def record_click(
    handle: str,
    counter_service: CounterService = Depends(get_counter_service)
):
    """Count a link click"""
    await counter_service.record_click(handle)
    return Ack()
