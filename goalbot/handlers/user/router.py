# goalbot/handlers/user/router.py
from aiogram import Router

from goalbot.handlers.user.goals import router as goals_router
from goalbot.handlers.user.leaderboard import router as leaderboard_router
from goalbot.handlers.user.period import router as period_router
from goalbot.handlers.user.progress import router as progress_router

router = Router(name="user")

router.include_router(progress_router)
router.include_router(period_router)
router.include_router(leaderboard_router)
router.include_router(goals_router)
