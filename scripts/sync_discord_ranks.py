# scripts/sync_discord_ranks.py
# Re-push every connected user's stored rank to Discord (cron / manual).
# Run from the repo root: python -m scripts.sync_discord_ranks
import os
import sys
import asyncio
import logging
import asyncpg
from dotenv import load_dotenv

load_dotenv()

from app.services.rank_store import UserRankStore
from app.services.rank_sync import sync_all_connected_users
from discord_manager import discord_manager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is required")

async def main() -> int:
    pool = await asyncpg.create_pool(DATABASE_URL, min_size=1, max_size=3)
    try:
        result = await sync_all_connected_users(UserRankStore(pool), discord_manager)
    finally:
        await pool.close()
    logging.info("Discord rank sync: %s ok, %s failed", result["success"], result["failed"])
    return 1 if result["failed"] else 0

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
