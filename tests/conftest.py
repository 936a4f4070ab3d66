from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock

import discord
import pytest

GUILD_ID = 111111111111111111
OTHER_GUILD_ID = 222222222222222222
U1 = 333333333333333333
U2 = 444444444444444444


def http_error(cls=discord.HTTPException, status=500, message="boom"):
    return cls(Mock(status=status, reason="Error"), message)


class FakeUser:
    def __init__(self, user_id, name="someone", administrator=False):
        self.id = user_id
        self.name = name
        self.display_avatar = SimpleNamespace(url=f"https://cdn.example/{user_id}.png")
        self.guild_permissions = SimpleNamespace(administrator=administrator)

    def __str__(self):
        return self.name


def make_invite(code, uses, inviter=None):
    return SimpleNamespace(code=code, uses=uses, inviter=inviter)


class FakeGuild:
    def __init__(self, guild_id=GUILD_ID, name="Test Guild", invites=None, members=()):
        self.id = guild_id
        self.name = name
        self.icon = None
        self.invites = AsyncMock(return_value=list(invites or []))
        self._members = set(members)

    def get_member(self, member_id):
        if member_id in self._members:
            return SimpleNamespace(id=member_id)
        return None


def make_member(member_id, guild):
    return SimpleNamespace(id=member_id, guild=guild, name=f"member-{member_id}")


def make_interaction(user, guild=None, client=None):
    guild = guild or FakeGuild()
    response = MagicMock()
    response.send_message = AsyncMock()
    response.defer = AsyncMock()
    response.is_done = Mock(return_value=False)
    return SimpleNamespace(
        user=user,
        guild=guild,
        guild_id=guild.id,
        client=client or SimpleNamespace(fetch_user=AsyncMock()),
        response=response,
        followup=SimpleNamespace(send=AsyncMock()),
        delete_original_response=AsyncMock(),
        command=None,
    )


@pytest.fixture
def guild():
    return FakeGuild()


@pytest.fixture
def inviter():
    return FakeUser(U1, name="inviter")
