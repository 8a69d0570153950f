from __future__ import annotations

from fastapi import Request

from .services import ChoreService


# PUBLIC_INTERFACE
def get_service(request: Request) -> ChoreService:
    """
    FastAPI dependency returning the ChoreService bound to the running app.

    The service is created by create_app() and stored on app.state, so every
    app instance (and every test client) gets its own store.
    """
    return request.app.state.service
