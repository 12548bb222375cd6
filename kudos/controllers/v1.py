from fastapi import APIRouter

from . import admin, cards, likes, stats, users

router = APIRouter(prefix="/v1")
router.include_router(users.router)
router.include_router(cards.router)
# likes live under /cards/{card_id}/likes
router.include_router(likes.router)
router.include_router(stats.router)
router.include_router(admin.router)
