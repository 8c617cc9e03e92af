from fastapi import APIRouter
from .v1 import blueprints, plugins, runs

api_router = APIRouter()

api_router.include_router(runs.router, tags=["runs"])
api_router.include_router(blueprints.router, tags=["blueprints"])
api_router.include_router(plugins.router, tags=["plugins"])


@api_router.get("/health")
def health():
    return {"status": "ok"}
