"""
Gong Notifier - API Dependencies
================================

FastAPI dependencies shared by the routers.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from gong_notifier.core.notifier import StageStatusDispatcher


def get_dispatcher(request: Request) -> StageStatusDispatcher:
    """Dispatcher created by the application lifespan."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notifier is not initialised",
        )
    return dispatcher


Dispatcher = Annotated[StageStatusDispatcher, Depends(get_dispatcher)]
