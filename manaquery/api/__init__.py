from manaquery.api.admin import router as admin_router
from manaquery.api.feedback import router as feedback_router
from manaquery.api.health import router as health_router
from manaquery.api.translate import router as translate_router

__all__ = [
    "admin_router",
    "feedback_router",
    "health_router",
    "translate_router",
]
