# scripts/init_subscription_plans.py
# Replace the subscription_plans rows with the FREE and paid plans.
# Run from the repo root: python -m scripts.init_subscription_plans
import os
import asyncio
import logging
import asyncpg
from dotenv import load_dotenv

load_dotenv()

from app.db import ensure_schema

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is required")

PLANS = [
    {
        "name": "FREE",
        "display_name": "Free Plan",
        "price": 0,
        "max_habits": 3,
        "max_trading_entries": 10,
        "max_annual_goals": 1,
        "max_quarterly_goals": 1,
        "max_monthly_goals": 0,
        "has_discord_integration": False,
        "has_priority_support": False,
        "has_early_access": False,
        "has_monthly_challenges": False,
        "has_premium_discord": False,
    },
    {
        "name": "ALTIORANS",
        "display_name": "Altioran",
        "price": 1499,  # cents
        "max_habits": 999,
        "max_trading_entries": 9999999,
        "max_annual_goals": 999,
        "max_quarterly_goals": 999,
        "max_monthly_goals": 999,
        "has_discord_integration": True,
        "has_priority_support": True,
        "has_early_access": True,
        "has_monthly_challenges": True,
        "has_premium_discord": True,
    },
]

async def main():
    pool = await asyncpg.create_pool(DATABASE_URL, min_size=1, max_size=2)
    try:
        await ensure_schema(pool)
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM subscription_plans")
                cols = list(PLANS[0])
                placeholders = ",".join(f"${i}" for i in range(1, len(cols) + 1))
                for plan in PLANS:
                    await conn.execute(
                        f"INSERT INTO subscription_plans ({', '.join(cols)}) VALUES ({placeholders})",
                        *[plan[c] for c in cols],
                    )
            rows = await conn.fetch("SELECT name, display_name, price, max_habits FROM subscription_plans ORDER BY price")
        for r in rows:
            logging.info("- %s (%s): %.2f EUR/month, %s habits", r["display_name"], r["name"], r["price"] / 100, r["max_habits"])
    finally:
        await pool.close()

if __name__ == "__main__":
    asyncio.run(main())
