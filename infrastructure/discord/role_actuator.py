from __future__ import annotations

import logging
from typing import AbstractSet, Dict, Optional, Set

import discord

from domain.errors import RoleConfigurationError, RoleUpdateError
from domain.models import RoleKind
from domain.repositories import RoleActuator

log = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def badges_held(member: discord.Member, role_ids: Dict[RoleKind, int]) -> Set[RoleKind]:
    held = {role.id for role in member.roles}
    return {kind for kind, role_id in role_ids.items() if role_id in held}


class DiscordRoleActuator(RoleActuator):
    """
    `RoleActuator` backed by a discord.py guild.

    Only roles whose state actually changes are sent to Discord, so a member
    who already holds exactly the right badges costs a single fetch.
    """

    def __init__(self, guild: discord.Guild, role_ids: Dict[RoleKind, int]) -> None:
        self._guild = guild
        self._role_ids = dict(role_ids)
        self._roles: Dict[RoleKind, discord.Role] = {}

    async def ensure_ready(self) -> None:
        roles: Dict[RoleKind, discord.Role] = {}
        missing = []
        for kind in RoleKind:
            role = self._guild.get_role(self._role_ids.get(kind, 0))
            if role is None:
                missing.append(kind.value)
            else:
                roles[kind] = role
        if missing:
            raise RoleConfigurationError(
                f"Badge roles not found in guild {self._guild.id}: {', '.join(missing)}"
            )
        self._roles = roles

    async def resolve_member(self, discord_id: str) -> Optional[discord.Member]:
        try:
            member_id = int(discord_id)
        except ValueError:
            log.warning("Ignoring malformed Discord ID %r", discord_id)
            return None

        member = self._guild.get_member(member_id)
        if member is not None:
            return member
        try:
            return await self._guild.fetch_member(member_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as exc:
            raise RoleUpdateError(
                f"could not fetch member: {exc}",
                retryable=exc.status in _RETRYABLE_STATUSES,
            ) from exc

    async def set_roles(
        self,
        member: discord.Member,
        add: AbstractSet[RoleKind],
        remove: AbstractSet[RoleKind],
    ) -> None:
        if not self._roles:
            await self.ensure_ready()

        held = badges_held(member, self._role_ids)
        to_remove = [self._roles[kind] for kind in remove if kind in held]
        to_add = [self._roles[kind] for kind in add if kind not in held]

        try:
            if to_remove:
                await member.remove_roles(*to_remove, reason="Moola role sync")
            if to_add:
                await member.add_roles(*to_add, reason="Moola role sync")
        except discord.Forbidden as exc:
            raise RoleUpdateError(f"missing permissions: {exc}") from exc
        except discord.NotFound as exc:
            raise RoleUpdateError(f"member left the guild: {exc}") from exc
        except discord.HTTPException as exc:
            raise RoleUpdateError(
                f"role update rejected: {exc}",
                retryable=exc.status in _RETRYABLE_STATUSES,
            ) from exc

        if to_remove or to_add:
            log.debug(
                "Updated roles for user %s: +%s -%s",
                member.id,
                [role.name for role in to_add],
                [role.name for role in to_remove],
            )
