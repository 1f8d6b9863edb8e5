# app/routers/limits.py
from fastapi import APIRouter, Depends

from app.auth.entitlements import compute_entitlements
from app.auth.session import get_current_user
from app.db import get_app_pool

router = APIRouter(prefix="/api/limits", tags=["limits"])

@router.get("")
async def limits(user_id: str = Depends(get_current_user), pool=Depends(get_app_pool)):
    return await compute_entitlements(pool, user_id)
