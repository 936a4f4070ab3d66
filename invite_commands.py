# ============================================================
# Slash Commands: /invite /checkinvites /resetinvites /forcebump
# ============================================================

import asyncio
import logging
import re

import discord
from discord import app_commands
from discord.ext import commands

from bump import BumpError, send_bump
from config import Settings
from invite_tracker import InviteLedger

log = logging.getLogger(__name__)

USER_ID_RE = re.compile(r"[0-9]{17,19}")

GENERIC_ERROR = "❌ An error occurred while processing your command."

# Reply deletion tasks still sleeping; kept so they are not garbage collected
_pending_deletions: set[asyncio.Task] = set()


def plural(count: int) -> str:
    return "" if count == 1 else "s"


def guild_icon_url(guild: discord.Guild | None) -> str | None:
    if guild is None or guild.icon is None:
        return None
    return guild.icon.url


async def _delete_reply_later(interaction: discord.Interaction, delay: float):
    await asyncio.sleep(delay)
    try:
        await interaction.delete_original_response()
    except discord.HTTPException:
        pass  # already deleted, or the interaction token expired


def schedule_reply_deletion(interaction: discord.Interaction, delay: float) -> asyncio.Task | None:
    """Fire-and-forget deletion of the original response after `delay` seconds."""
    if delay <= 0:
        return None
    task = asyncio.create_task(_delete_reply_later(interaction, delay))
    _pending_deletions.add(task)
    task.add_done_callback(_pending_deletions.discard)
    return task


def is_admin(interaction: discord.Interaction) -> bool:
    perms = getattr(interaction.user, "guild_permissions", None)
    return bool(perms and perms.administrator)


# ---- Handlers ----

async def handle_invite(interaction: discord.Interaction, ledger: InviteLedger, delete_after: float):
    total = ledger.total_for(interaction.guild_id, interaction.user.id)

    embed = discord.Embed(
        title="📨 Your Invite Count",
        description=f"You have **{total}** successful invite{plural(total)} on this server!",
        color=0x00FF99,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_thumbnail(url=interaction.user.display_avatar.url)
    embed.set_footer(text="Keep inviting friends to grow the community!", icon_url=guild_icon_url(interaction.guild))

    await interaction.response.send_message(embed=embed, ephemeral=True)
    schedule_reply_deletion(interaction, delete_after)


async def handle_check_invites(
    interaction: discord.Interaction,
    ledger: InviteLedger,
    delete_after: float,
    user_id: str,
):
    if not USER_ID_RE.fullmatch(user_id or ""):
        embed = discord.Embed(
            title="❌ Invalid User ID",
            description="Please provide a valid Discord User ID (17-19 digits).",
            color=0xFF6B6B,
            timestamp=discord.utils.utcnow(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)
        schedule_reply_deletion(interaction, delete_after)
        return

    target_id = int(user_id)
    total = ledger.total_for(interaction.guild_id, target_id)

    # Try to fetch the user to get their tag and avatar
    target = None
    try:
        target = await interaction.client.fetch_user(target_id)
    except discord.HTTPException as e:
        log.warning("Error fetching user %s: %s", target_id, e)

    label = str(target) if target else f"User ID {target_id}"
    subject = f"**{target}** has" if target else f"User ID **{target_id}** has"
    embed = discord.Embed(
        title=f"📨 Invite Count for {label}",
        description=f"{subject} **{total}** successful invite{plural(total)} on this server!",
        color=0x00FF99,
        timestamp=discord.utils.utcnow(),
    )
    if target:
        embed.set_thumbnail(url=target.display_avatar.url)
    embed.set_footer(text="Invite tracking by InviteBot", icon_url=guild_icon_url(interaction.guild))

    await interaction.response.send_message(embed=embed, ephemeral=True)
    schedule_reply_deletion(interaction, delete_after)


async def handle_reset_invites(interaction: discord.Interaction, ledger: InviteLedger):
    if not is_admin(interaction):
        return await interaction.response.send_message(
            "❌ You need Administrator permissions to reset invite counts.", ephemeral=True
        )

    guild = interaction.guild
    removed = ledger.reset(guild.id, lambda member_id: guild.get_member(member_id) is not None)

    embed = discord.Embed(
        title="🔄 Invite Counts Reset",
        description=f"All invite counts for **{guild.name}** have been reset to 0.",
        color=0xFF6B6B,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_thumbnail(url=guild_icon_url(guild))
    embed.set_footer(text=f"Reset by {interaction.user.name}", icon_url=interaction.user.display_avatar.url)

    await interaction.response.send_message(embed=embed, ephemeral=True)
    log.info("Invite counts reset for guild %s by %s (%d entries)", guild.name, interaction.user, removed)


async def handle_force_bump(interaction: discord.Interaction, settings: Settings):
    if not is_admin(interaction):
        return await interaction.response.send_message(
            "❌ You need Administrator permissions to use this command.", ephemeral=True
        )
    if settings.bump_channel_id is None:
        return await interaction.response.send_message(
            "❌ Auto-bump is not configured (BUMP_CHANNEL_ID is unset).", ephemeral=True
        )

    await interaction.response.defer(ephemeral=True, thinking=True)
    try:
        await send_bump(interaction.client, settings.bump_channel_id, settings.disboard_bot_id)
    except BumpError as e:
        log.warning("[forcebump] %s", e)
        return await interaction.followup.send(f"❌ Error sending /bump: {e}", ephemeral=True)
    await interaction.followup.send(
        f"✅ Successfully sent /bump in channel <#{settings.bump_channel_id}>", ephemeral=True
    )


# ---- Cog ----

class InviteCommands(commands.Cog):
    def __init__(self, bot):
        self.bot = bot

    @app_commands.command(name="invite", description="Check your current invite count")
    @app_commands.guild_only()
    async def invite_cmd(self, interaction: discord.Interaction):
        await handle_invite(interaction, self.bot.tracker.ledger, self.bot.settings.reply_delete_after)

    @app_commands.command(name="checkinvites", description="Check the invite count of a user by their User ID")
    @app_commands.describe(user_id="The User ID of the member to check")
    @app_commands.guild_only()
    async def checkinvites_cmd(self, interaction: discord.Interaction, user_id: str):
        await handle_check_invites(
            interaction, self.bot.tracker.ledger, self.bot.settings.reply_delete_after, user_id
        )

    @app_commands.command(name="resetinvites", description="Reset all invite counts (Admin only)")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def resetinvites_cmd(self, interaction: discord.Interaction):
        await handle_reset_invites(interaction, self.bot.tracker.ledger)

    @app_commands.command(name="forcebump", description="Manually trigger Disboard /bump (Admin only)")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def forcebump_cmd(self, interaction: discord.Interaction):
        await handle_force_bump(interaction, self.bot.settings)

    async def cog_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        command = getattr(interaction.command, "name", None)
        log.error("Error handling command %s", command, exc_info=error)
        if interaction.response.is_done():
            await interaction.followup.send(GENERIC_ERROR, ephemeral=True)
        else:
            await interaction.response.send_message(GENERIC_ERROR, ephemeral=True)


async def setup(bot):
    await bot.add_cog(InviteCommands(bot))
