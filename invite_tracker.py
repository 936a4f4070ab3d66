# ============================================================
# Invite Tracking: snapshot cache, used-invite detection, ledger
# ============================================================

import asyncio
import logging
from collections import defaultdict
from typing import Callable, Iterable

import discord

log = logging.getLogger(__name__)

# code -> uses, in the order Discord returned the invites
InviteSnapshot = dict[str, int]


def snapshot_of(invites: Iterable[discord.Invite]) -> InviteSnapshot:
    return {inv.code: (inv.uses or 0) for inv in invites}


def find_used_invite(
    before: InviteSnapshot,
    after: InviteSnapshot,
    invites: Iterable[discord.Invite],
) -> tuple[str, discord.abc.User] | None:
    """
    Compare current invites to cached ones to find which code increased.
    Returns (invite_code, inviter) for the first increased code, or None when
    nothing increased or the used invite has no inviter (vanity URL).
    """
    for code, uses_after in after.items():
        if uses_after > before.get(code, 0):
            inv_obj = next((i for i in invites if i.code == code), None)
            inviter = getattr(inv_obj, "inviter", None)
            if inviter is None:
                return None
            return code, inviter
    return None


class InviteCache:
    """Last seen invite snapshot per guild."""

    def __init__(self):
        self._snapshots: dict[int, InviteSnapshot] = {}

    def get(self, guild_id: int) -> InviteSnapshot:
        return self._snapshots.get(guild_id, {})

    def replace(self, guild_id: int, snapshot: InviteSnapshot) -> None:
        self._snapshots[guild_id] = dict(snapshot)

    async def refresh(self, guild: discord.Guild) -> InviteSnapshot:
        invites = await guild.invites()
        snapshot = snapshot_of(invites)
        self.replace(guild.id, snapshot)
        return snapshot

    def track(self, guild_id: int, code: str, uses: int = 0) -> None:
        self._snapshots.setdefault(guild_id, {})[code] = uses

    def forget(self, guild_id: int, code: str) -> None:
        self._snapshots.get(guild_id, {}).pop(code, None)

    def drop(self, guild_id: int) -> None:
        self._snapshots.pop(guild_id, None)


class InviteLedger:
    """
    Credited invites per (guild_id, inviter_id), plus who invited each member.

    `member_inviter` is global rather than per guild and is only pruned by
    reset(); it grows by one int pair per attributed join.
    """

    def __init__(self):
        self._counts: dict[tuple[int, int], int] = defaultdict(int)
        self._member_inviter: dict[int, int] = {}

    def credit(self, guild_id: int, inviter_id: int, member_id: int | None = None) -> int:
        self._counts[(guild_id, inviter_id)] += 1
        if member_id is not None:
            self._member_inviter[member_id] = inviter_id
        return self._counts[(guild_id, inviter_id)]

    def seed(self, guild_id: int, inviter_id: int, uses: int) -> None:
        if uses > 0:
            self._counts[(guild_id, inviter_id)] += uses

    def total_for(self, guild_id: int, user_id: int) -> int:
        return self._counts.get((guild_id, user_id), 0)

    def inviter_of(self, member_id: int) -> int | None:
        return self._member_inviter.get(member_id)

    def reset(self, guild_id: int, still_present: Callable[[int], bool]) -> int:
        """
        Drop all counts for `guild_id` and the inviter links of members for
        which `still_present(member_id)` is true. Returns removed count entries.
        """
        keys = [key for key in self._counts if key[0] == guild_id]
        for key in keys:
            del self._counts[key]
        for member_id in [mid for mid in self._member_inviter if still_present(mid)]:
            del self._member_inviter[member_id]
        return len(keys)


class InviteTracker:
    """Runs the fetch / compare / credit cycle for member events."""

    def __init__(self, cache: InviteCache | None = None, ledger: InviteLedger | None = None):
        self.cache = cache or InviteCache()
        self.ledger = ledger or InviteLedger()
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def prime(self, guild: discord.Guild, seed_ledger: bool = True) -> bool:
        """Fetch the guild's invites into the cache. Returns False if the fetch failed."""
        try:
            invites = await guild.invites()
        except discord.HTTPException as e:
            log.warning("Could not fetch invites for %s: %s", guild.name, e)
            return False

        self.cache.replace(guild.id, snapshot_of(invites))
        log.info("Fetched %d existing invites for %s", len(invites), guild.name)
        if not seed_ledger:
            return True

        for invite in invites:
            if invite.inviter is not None and (invite.uses or 0) > 0:
                self.ledger.seed(guild.id, invite.inviter.id, invite.uses)
                log.debug("Initialized %d invites for user ID %s in %s", invite.uses, invite.inviter.id, guild.name)
            else:
                log.debug("Skipped invite %s in %s: no inviter or no uses", invite.code, guild.name)
        return True

    async def handle_join(self, member: discord.Member) -> tuple[str, discord.abc.User] | None:
        guild = member.guild
        async with self._locks[guild.id]:
            before = self.cache.get(guild.id)
            try:
                invites = await guild.invites()
            except discord.HTTPException as e:
                log.warning("Invite fetch failed for %s while handling %s: %s", guild.name, member, e)
                return None

            after = snapshot_of(invites)
            self.cache.replace(guild.id, after)
            match = find_used_invite(before, after, invites)
            if match is None:
                log.warning("Could not determine invite used by %s in %s", member, guild.name)
                return None

            code, inviter = match
            self.ledger.credit(guild.id, inviter.id, member.id)

        log.info("%s joined %s via invite from %s (code: %s, uses: %d)", member, guild.name, inviter, code, after[code])
        return match

    def handle_leave(self, member: discord.Member) -> None:
        inviter_id = self.ledger.inviter_of(member.id)
        if inviter_id is not None:
            log.info("%s left, invite count for %s remains unchanged.", member, inviter_id)
