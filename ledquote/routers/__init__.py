from __future__ import annotations

from fastapi import APIRouter

from . import engine

router = APIRouter()
router.include_router(engine.router)
