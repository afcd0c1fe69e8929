from .auth_routes import router as auth_router
from .clients_routes import router as clients_router
from .content_routes import router as content_router

__all__ = [
    "auth_router",
    "clients_router",
    "content_router",
]
