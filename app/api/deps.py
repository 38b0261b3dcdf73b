from fastapi import Request

from app.db import get_db
from app.services.meta_messaging import MetaGraphClient


def get_graph_client(request: Request) -> MetaGraphClient:
    """Shared Graph API client created in the application lifespan."""
    return request.app.state.graph


__all__ = [
    "get_db",
    "get_graph_client",
]
