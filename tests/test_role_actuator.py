import unittest
from types import SimpleNamespace

from domain.errors import RoleConfigurationError, RoleUpdateError
from domain.models import RoleKind

ROLE_IDS = {RoleKind.WHITELIST: 101, RoleKind.MOOLALIST: 102, RoleKind.FREE_MINT: 103}


def _role(role_id):
    return SimpleNamespace(id=role_id, name=f"role-{role_id}")


class _FakeMember:
    def __init__(self, member_id, role_ids, error=None):
        self.id = member_id
        self.roles = [_role(rid) for rid in role_ids]
        self.error = error
        self.added = []
        self.removed = []

    async def add_roles(self, *roles, reason=None):
        if self.error is not None:
            raise self.error
        self.added.extend(role.id for role in roles)

    async def remove_roles(self, *roles, reason=None):
        if self.error is not None:
            raise self.error
        self.removed.extend(role.id for role in roles)


class _FakeGuild:
    def __init__(self, role_ids, members=(), fetch_error=None):
        self.id = 1
        self._roles = {rid: _role(rid) for rid in role_ids}
        self._members = {m.id: m for m in members}
        self._fetch_error = fetch_error

    def get_role(self, role_id):
        return self._roles.get(role_id)

    def get_member(self, member_id):
        return self._members.get(member_id)

    async def fetch_member(self, member_id):
        raise self._fetch_error


class DiscordRoleActuatorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        try:
            import discord
        except ModuleNotFoundError:
            self.skipTest("discord.py not installed")
            return

        from infrastructure.discord.role_actuator import DiscordRoleActuator

        self.discord = discord
        self.actuator_cls = DiscordRoleActuator

    def _http_error(self, cls, status):
        return cls(SimpleNamespace(status=status, reason="error"), "error")

    async def test_missing_badge_role_is_a_configuration_error(self):
        actuator = self.actuator_cls(_FakeGuild([101, 102]), ROLE_IDS)
        with self.assertRaises(RoleConfigurationError):
            await actuator.ensure_ready()

    async def test_only_changed_roles_are_sent(self):
        member = _FakeMember(7, [101, 103, 999])
        actuator = self.actuator_cls(_FakeGuild([101, 102, 103], [member]), ROLE_IDS)
        await actuator.ensure_ready()

        await actuator.set_roles(
            member,
            add={RoleKind.WHITELIST, RoleKind.MOOLALIST},
            remove={RoleKind.FREE_MINT},
        )

        self.assertEqual(member.added, [102])
        self.assertEqual(member.removed, [103])

    async def test_member_already_in_desired_state_is_left_alone(self):
        member = _FakeMember(7, [102])
        actuator = self.actuator_cls(_FakeGuild([101, 102, 103], [member]), ROLE_IDS)

        await actuator.set_roles(
            member,
            add={RoleKind.MOOLALIST},
            remove={RoleKind.WHITELIST, RoleKind.FREE_MINT},
        )

        self.assertEqual(member.added, [])
        self.assertEqual(member.removed, [])

    async def test_resolve_member(self):
        member = _FakeMember(7, [])
        guild = _FakeGuild(
            [101, 102, 103],
            [member],
            fetch_error=self._http_error(self.discord.NotFound, 404),
        )
        actuator = self.actuator_cls(guild, ROLE_IDS)

        self.assertIs(await actuator.resolve_member("7"), member)
        self.assertIsNone(await actuator.resolve_member("8"))
        self.assertIsNone(await actuator.resolve_member("not-an-id"))

    async def test_rate_limit_is_retryable(self):
        member = _FakeMember(7, [], error=self._http_error(self.discord.HTTPException, 429))
        actuator = self.actuator_cls(_FakeGuild([101, 102, 103], [member]), ROLE_IDS)

        with self.assertRaises(RoleUpdateError) as ctx:
            await actuator.set_roles(member, add={RoleKind.WHITELIST}, remove=set())
        self.assertTrue(ctx.exception.retryable)

    async def test_forbidden_is_not_retryable(self):
        member = _FakeMember(7, [], error=self._http_error(self.discord.Forbidden, 403))
        actuator = self.actuator_cls(_FakeGuild([101, 102, 103], [member]), ROLE_IDS)

        with self.assertRaises(RoleUpdateError) as ctx:
            await actuator.set_roles(member, add={RoleKind.WHITELIST}, remove=set())
        self.assertFalse(ctx.exception.retryable)


if __name__ == "__main__":
    unittest.main()
