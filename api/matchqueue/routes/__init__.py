from fastapi import FastAPI

from .matching import router as matching_router
from .queue import router as queue_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(matching_router, prefix="/matching", tags=["matching"])
    app.include_router(queue_router, prefix="/queue", tags=["queue"])


__all__ = ["include_modular_routers"]
