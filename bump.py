# ============================================================
# Disboard auto-bump: re-invoke another application's slash command
# ============================================================

import logging

import discord
from discord.ext import tasks
from discord.http import Route

log = logging.getLogger(__name__)

APPLICATION_COMMAND = 2  # interaction type
CHAT_INPUT = 1  # application command type


class BumpError(Exception):
    """A bump attempt failed; the message is safe to show to an admin."""


async def find_app_command(client: discord.Client, application_id: int, guild_id: int, name: str) -> dict | None:
    """Look up `name` among the app's guild commands, then its global ones."""
    lookups = (
        ("guild", lambda: client.http.get_guild_commands(application_id, guild_id)),
        ("global", lambda: client.http.get_global_commands(application_id)),
    )
    for scope, fetch in lookups:
        try:
            commands = await fetch()
        except discord.HTTPException as e:
            log.warning("Failed to fetch %s commands for application %s: %s", scope, application_id, e)
            continue
        log.debug("Fetched %d %s commands for application %s", len(commands), scope, application_id)
        for command in commands:
            if command.get("name") == name:
                return command
    return None


async def send_bump(client: discord.Client, channel_id: int, application_id: int, command_name: str = "bump") -> int:
    """
    Invoke `/<command_name>` of `application_id` in `channel_id`.
    Returns the id of the command that was sent. Raises BumpError on failure.
    """
    channel = client.get_channel(channel_id)
    if channel is None:
        try:
            channel = await client.fetch_channel(channel_id)
        except discord.HTTPException:
            channel = None
    if not isinstance(channel, discord.TextChannel):
        raise BumpError(f"Channel {channel_id} not found or not a text channel")

    guild = channel.guild
    perms = channel.permissions_for(guild.me)
    if not (perms.send_messages and perms.use_application_commands):
        raise BumpError(
            f"Missing permissions in channel {channel_id}: SendMessages={perms.send_messages}, "
            f"UseApplicationCommands={perms.use_application_commands}"
        )

    if guild.get_member(application_id) is None:
        try:
            await guild.fetch_member(application_id)
        except discord.HTTPException:
            raise BumpError(f"Bot {application_id} not found in guild {guild.name}") from None

    command = await find_app_command(client, application_id, guild.id, command_name)
    if command is None:
        raise BumpError(f"/{command_name} command not found for {application_id} in guild {guild.name}")

    payload = {
        "type": APPLICATION_COMMAND,
        "application_id": str(application_id),
        "guild_id": str(guild.id),
        "channel_id": str(channel_id),
        "data": {
            "id": str(command["id"]),
            "name": command_name,
            "type": CHAT_INPUT,
        },
        "nonce": str(discord.utils.time_snowflake(discord.utils.utcnow())),
        "session_id": client.ws.session_id,
    }
    try:
        await client.http.request(Route("POST", "/interactions"), json=payload)
    except discord.HTTPException as e:
        raise BumpError(f"Discord rejected /{command_name}: {e}") from e

    log.info("Sent /%s in channel %s for guild %s", command_name, channel_id, guild.name)
    return int(command["id"])


class BumpScheduler:
    """Fixed-interval bump loop. A failed tick just waits for the next one."""

    def __init__(self, client: discord.Client, channel_id: int, application_id: int, interval_seconds: int):
        self.client = client
        self.channel_id = channel_id
        self.application_id = application_id
        self.interval_seconds = interval_seconds
        self.bump_loop.change_interval(seconds=interval_seconds)

    async def bump_once(self) -> int:
        return await send_bump(self.client, self.channel_id, self.application_id)

    @tasks.loop(hours=2)
    async def bump_loop(self):
        try:
            await self.bump_once()
        except BumpError as e:
            log.error("Auto-bump failed: %s", e)
        except Exception:
            # an escaping error would stop the loop for good
            log.exception("Unexpected error during auto-bump")

    @bump_loop.before_loop
    async def _wait_ready(self):
        await self.client.wait_until_ready()

    def start(self) -> None:
        if not self.bump_loop.is_running():
            self.bump_loop.start()
            log.info(
                "Automatic /bump scheduled every %d minutes in channel %s",
                self.interval_seconds // 60,
                self.channel_id,
            )

    def stop(self) -> None:
        self.bump_loop.cancel()
