"""Event stream endpoint for live note status."""

from typing import cast

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from fancynote.api.deps import LinkUserDep
from fancynote.utils.events import event_manager

router = APIRouter(tags=["events"])


@router.get("/api/events")
async def events_endpoint(current_user: LinkUserDep):
    """
    Stream ``note-status-<id>`` events for the caller's notes.

    EventSource cannot set headers, so the token may come as ``?token=``.
    """
    user_id = cast(int, current_user.id)

    return StreamingResponse(
        event_manager.subscribe(user_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering for Nginx
        },
    )
