# goalbot/handlers/admin/router.py
from aiogram import Router

from goalbot.handlers.admin.goals import router as admin_goals_router
from goalbot.handlers.admin.sweep import router as sweep_router

router = Router(name="admin")

router.include_router(admin_goals_router)
router.include_router(sweep_router)
