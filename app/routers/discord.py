# app/routers/discord.py
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.auth.session import get_current_user
from app.deps import get_completion_store, get_notifier, get_rank_store
from app.services.rank_sync import sync_all_connected_users, update_user_rank

router = APIRouter(prefix="/api/discord", tags=["discord"])

ADMIN_USER_ID = os.getenv("ADMIN_USER_ID")

class SyncRequest(BaseModel):
    type: str  # "user" | "all"
    user_id: Optional[str] = None

@router.post("/sync")
async def sync(
    body: SyncRequest,
    user_id: str = Depends(get_current_user),
    completions=Depends(get_completion_store),
    users=Depends(get_rank_store),
    notifier=Depends(get_notifier),
):
    if body.type == "user":
        if body.user_id and body.user_id != user_id:
            raise HTTPException(status_code=403, detail="Not allowed")
        update = await update_user_rank(user_id, completions=completions, users=users, notifier=notifier)
        return {"success": True, "message": "User sync triggered", "rank": update.to_dict()}

    if body.type != "all":
        raise HTTPException(status_code=400, detail="Invalid sync type")

    if not ADMIN_USER_ID or user_id != ADMIN_USER_ID:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    result = await sync_all_connected_users(users, notifier)
    return {
        "success": True,
        "message": f"Sync finished: {result['success']} ok, {result['failed']} failed",
        "result": result,
    }

@router.get("/status")
async def status(user_id: str = Depends(get_current_user), notifier=Depends(get_notifier)):
    return await notifier.bot_status()
