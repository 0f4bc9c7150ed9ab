"""API routers for ProPredict."""

from propredict.routers.arena import router as arena_router
from propredict.routers.content import router as content_router
from propredict.routers.football import router as football_router
from propredict.routers.health import router as health_router
from propredict.routers.jobs import router as jobs_router
from propredict.routers.me import router as me_router
from propredict.routers.unlocks import router as unlocks_router
from propredict.routers.webhooks import router as webhooks_router

__all__ = [
    "arena_router",
    "content_router",
    "football_router",
    "health_router",
    "jobs_router",
    "me_router",
    "unlocks_router",
    "webhooks_router",
]
