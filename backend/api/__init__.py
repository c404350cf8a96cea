from .info import router as info_router
from .orders import router as orders_router
from .returns import router as returns_router
from .tabs import router as tabs_router

__all__ = [
    "info_router",
    "orders_router",
    "returns_router",
    "tabs_router",
]
