# app/routers/auth_me.py
from fastapi import APIRouter, Request
from pydantic import BaseModel
from datetime import datetime

from app.services.ranks import Tier

router = APIRouter(prefix="/api/auth", tags=["auth"])

class MeOut(BaseModel):
    user_id: str | None
    username: str | None
    rank: Tier = Tier.NEW
    plan: str | None = None
    discord_id: str | None = None
    discord_connected: bool = False
    last_discord_sync: datetime | None = None

@router.get("/me", response_model=MeOut)
async def me(req: Request):
    sess = req.session or {}
    user_id = sess.get("user_id")
    username = sess.get("username")
    if not user_id:
        return MeOut(user_id=None, username=None)

    pool = req.app.state.pool
    row = await pool.fetchrow(
        """
        SELECT u.name, u.rank, u.subscription_plan,
               p.discord_id, p.discord_connected, p.last_discord_sync
          FROM users u
          LEFT JOIN discord_profiles p ON p.user_id = u.id
         WHERE u.id=$1
        """,
        user_id,
    )
    if not row:
        return MeOut(user_id=user_id, username=username)

    return MeOut(
        user_id=user_id,
        username=username or row["name"],
        rank=Tier.parse(row["rank"]),
        plan=row["subscription_plan"],
        discord_id=row["discord_id"],
        discord_connected=bool(row["discord_connected"]),
        last_discord_sync=row["last_discord_sync"],
    )
