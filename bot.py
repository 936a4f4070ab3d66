# ============================================================
# Invite Tracker + Disboard Auto-Bump
# - Invite attribution on join (snapshot diff) + per-guild counts
# - /invite /checkinvites /resetinvites /forcebump
# - Fixed-interval /bump of Disboard in a configured channel
# - aiohttp keep-alive server (GET / and /health)
# ============================================================

import asyncio
import logging
import sys

import discord
from discord.ext import commands

from bump import BumpScheduler
from config import ConfigError, Settings, load_settings
from invite_tracker import InviteTracker
from keep_alive import start_keep_alive

log = logging.getLogger(__name__)


def log_unhandled(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    log.error("Unhandled exception in event loop: %s", context.get("message"), exc_info=context.get("exception"))


class InviteBot(commands.Bot):
    def __init__(self, settings: Settings):
        intents = discord.Intents.default()
        # member events + invite events; slash commands need no message content
        intents.members = True
        intents.guilds = True
        intents.invites = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)

        self.settings = settings
        self.tracker = InviteTracker()
        self.bumper = None
        if settings.bump_channel_id is not None:
            self.bumper = BumpScheduler(
                self, settings.bump_channel_id, settings.disboard_bot_id, settings.bump_interval_seconds
            )
        self.keep_alive_runner = None
        self._seeded_guilds: set[int] = set()

    async def setup_hook(self):
        asyncio.get_running_loop().set_exception_handler(log_unhandled)
        self.keep_alive_runner = await start_keep_alive(self.settings.port)
        await self.load_extension("invite_commands")
        await self.sync_commands()

    async def sync_commands(self):
        try:
            synced = await self.tree.sync()
            log.info("Synced %d global commands: %s", len(synced), [c.name for c in synced])
        except discord.HTTPException as e:
            log.error("Error registering global slash commands: %s", e)

        # Guild-local copy propagates instantly, global sync can take a while
        if self.settings.guild_id is not None:
            guild = discord.Object(id=self.settings.guild_id)
            self.tree.copy_global_to(guild=guild)
            try:
                await self.tree.sync(guild=guild)
                log.info("Synced guild-specific commands for guild %s", self.settings.guild_id)
            except discord.HTTPException as e:
                log.error("Error registering guild-specific commands for guild %s: %s", self.settings.guild_id, e)

    async def prime_guild(self, guild: discord.Guild):
        seed = guild.id not in self._seeded_guilds
        if await self.tracker.prime(guild, seed_ledger=seed):
            self._seeded_guilds.add(guild.id)

    # ---- Events ----

    async def on_ready(self):
        for guild in self.guilds:
            await self.prime_guild(guild)

        if self.bumper is not None:
            self.bumper.start()

        log.info("[READY] Logged in as %s (%s) with %d guilds.", self.user, self.user.id, len(self.guilds))

    async def on_guild_join(self, guild: discord.Guild):
        await self.prime_guild(guild)

    async def on_guild_remove(self, guild: discord.Guild):
        self.tracker.cache.drop(guild.id)

    async def on_invite_create(self, invite: discord.Invite):
        if invite.guild is not None:
            self.tracker.cache.track(invite.guild.id, invite.code, invite.uses or 0)

    async def on_invite_delete(self, invite: discord.Invite):
        if invite.guild is not None:
            self.tracker.cache.forget(invite.guild.id, invite.code)

    async def on_member_join(self, member: discord.Member):
        await self.tracker.handle_join(member)

    async def on_member_remove(self, member: discord.Member):
        self.tracker.handle_leave(member)

    async def on_error(self, event_method: str, *args, **kwargs):
        log.exception("Unhandled error in %s", event_method)

    async def close(self):
        if self.bumper is not None:
            self.bumper.stop()
        if self.keep_alive_runner is not None:
            await self.keep_alive_runner.cleanup()
            self.keep_alive_runner = None
        await super().close()


def main():
    try:
        settings = load_settings()
    except ConfigError as e:
        discord.utils.setup_logging(root=True)
        log.critical("%s", e)
        sys.exit(1)

    discord.utils.setup_logging(level=logging.getLevelName(settings.log_level), root=True)
    log.info("Ensure you enabled 'Server Members Intent' in the Developer Portal.")

    bot = InviteBot(settings)
    try:
        bot.run(settings.token, log_handler=None)
    except discord.LoginFailure as e:
        log.critical("Failed to login to Discord: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
