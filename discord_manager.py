# discord_manager.py
import os
import logging
import asyncio
import aiohttp
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from app.errors import ExternalSyncError
from app.services.ranks import Tier

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"
HTTP_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class DiscordManager:
    def __init__(self):
        self.bot_token = os.getenv("DISCORD_BOT_TOKEN")
        self.guild_id = os.getenv("DISCORD_SERVER_ID")
        self.webhook_url = (os.getenv("DISCORD_BOT_WEBHOOK_URL") or "").rstrip("/") or None
        self.timeout = aiohttp.ClientTimeout(total=float(os.getenv("DISCORD_HTTP_TIMEOUT", "10")))
        # DISCORD_ROLE_NEW, DISCORD_ROLE_BEGINNER, ... one guild role per tier
        self.rank_roles: Dict[Tier, str] = {
            t: os.environ[f"DISCORD_ROLE_{t.value}"]
            for t in Tier
            if os.getenv(f"DISCORD_ROLE_{t.value}")
        }

    def _bot_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bot {self.bot_token}",
            "Content-Type": "application/json",
        }

    def merge_rank_roles(self, current: Iterable[str], tier: Tier) -> List[str]:
        """Member roles with every rank role replaced by the one for `tier`."""
        role_id = self.rank_roles.get(tier)
        if not role_id:
            raise ExternalSyncError(f"No Discord role mapping for rank {tier.value}")
        rank_ids = set(self.rank_roles.values())
        return [r for r in current if r not in rank_ids] + [role_id]

    async def send_webhook_sync(self, discord_id: str, tier: Tier) -> None:
        """Ask the community bot to apply the rank role."""
        if not self.webhook_url:
            raise ExternalSyncError("DISCORD_BOT_WEBHOOK_URL not configured")

        url = f"{self.webhook_url}/webhook/sync-rank"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, json={"discordId": discord_id, "rank": tier.value}) as resp:
                    if resp.status not in (200, 201, 204):
                        txt = await resp.text()
                        raise ExternalSyncError(f"Webhook failed: {resp.status} {txt[:200]}")
                    result = await resp.json(content_type=None)
        except HTTP_ERRORS + (ValueError,) as e:
            raise ExternalSyncError(f"Webhook unreachable: {e}") from e

        if not (result or {}).get("success"):
            raise ExternalSyncError(f"Webhook returned failure: {result}")
        logger.info(f"✅ Webhook synced {discord_id} -> {tier.value}")

    async def is_member(self, discord_id: str) -> bool:
        if not (self.bot_token and self.guild_id):
            return False
        url = f"{DISCORD_API}/guilds/{self.guild_id}/members/{discord_id}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, headers=self._bot_headers()) as resp:
                    return resp.status == 200
        except HTTP_ERRORS as e:
            logger.warning(f"Guild membership check failed for {discord_id}: {e}")
            return False

    async def update_rank_role(self, discord_id: str, tier: Tier) -> None:
        """Swap the member's rank role directly through the Discord API."""
        if not (self.bot_token and self.guild_id):
            raise ExternalSyncError("Discord bot configuration incomplete")

        url = f"{DISCORD_API}/guilds/{self.guild_id}/members/{discord_id}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout, headers=self._bot_headers()) as session:
                async with session.get(url) as resp:
                    if resp.status != 200:
                        raise ExternalSyncError(f"Failed to fetch member {discord_id}: {resp.status}")
                    member = await resp.json()

                roles = self.merge_rank_roles([str(r) for r in (member.get("roles") or [])], tier)

                async with session.patch(url, json={"roles": roles}) as resp:
                    if resp.status not in (200, 204):
                        raise ExternalSyncError(f"Failed to update roles for {discord_id}: {resp.status}")
        except HTTP_ERRORS as e:
            raise ExternalSyncError(f"Discord API error: {e}") from e
        logger.info(f"✅ Assigned {tier.value} role to {discord_id}")

    async def sync_rank_direct(self, discord_id: str, tier: Tier) -> None:
        if not await self.is_member(discord_id):
            raise ExternalSyncError(f"{discord_id} is not in the Discord guild")
        await self.update_rank_role(discord_id, tier)

    async def notify_rank_change(self, discord_id: str, tier: Tier) -> bool:
        """
        Push a rank to Discord: bot webhook first, direct API as fallback.
        Raises ExternalSyncError when neither path works.
        """
        tier = Tier(tier)
        try:
            await self.send_webhook_sync(discord_id, tier)
            return True
        except ExternalSyncError as e:
            logger.warning(f"⚠️ Webhook sync failed, falling back to API: {e}")

        await self.sync_rank_direct(discord_id, tier)
        return True

    async def bot_status(self) -> Dict[str, Optional[object]]:
        status = {
            "online": False,
            "status": None,
            "url": self.webhook_url,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if not self.webhook_url:
            status["error"] = "DISCORD_BOT_WEBHOOK_URL not configured"
            return status
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(f"{self.webhook_url}/health") as resp:
                    status["online"] = resp.status == 200
                    status["status"] = resp.status
        except Exception as e:
            logger.error(f"❌ Discord bot health check failed: {e}")
            status["error"] = str(e)
        return status

# Global instance
discord_manager = DiscordManager()
