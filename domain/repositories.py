from __future__ import annotations

from decimal import Decimal
from typing import AbstractSet, Any, Collection, List, Optional, Protocol

from .models import LinkToken, RoleKind, Team, TeamThresholds, TeamTotals, UserAccount


class UserRepository(Protocol):
    """
    Abstraction over the points ledger.

    Implementations are responsible for:
    - Mapping between database rows and the `UserAccount` domain model.
    - Hiding any SQL / driver details from the application layer.
    - Raising `RepositoryError` when the backend call itself fails.
    """

    def get_user(self, discord_id: str) -> Optional[UserAccount]:
        """Return the user linked to the given Discord ID, or None if not found."""

        ...

    def get_all_eligible_users(self, excluded: Collection[str] = ()) -> List[UserAccount]:
        """
        Return every user with a Discord ID that is not in `excluded`.

        Users without a team are included; callers decide what to do with them.
        """

        ...

    def update_points(self, discord_id: str, points: Decimal) -> None:
        """Overwrite a user's balance with `points`."""

        ...

    def transfer(self, sender_id: str, receiver_id: str, amount: Decimal) -> None:
        """
        Move `amount` points from sender to receiver in a single transaction.

        Either both balances change or neither does.
        """

        ...

    def set_team(self, discord_id: str, team: Team) -> None:
        ...

    def get_team_totals(self, excluded: Collection[str] = ()) -> TeamTotals:
        """Sum points per team, ignoring users in `excluded`."""

        ...

    def get_top_users(
        self,
        limit: Optional[int] = None,
        team: Optional[Team] = None,
        excluded: Collection[str] = (),
    ) -> List[UserAccount]:
        """Return users ordered by points, highest first."""

        ...


class LinkTokenRepository(Protocol):
    """Storage for one-time wallet-link tokens."""

    def insert_token(self, token: LinkToken) -> None:
        ...


class ThresholdSettingsRepository(Protocol):
    """
    Persists the winning/losing threshold sets so admin changes survive
    restarts.
    """

    def load(self) -> Optional[TeamThresholds]:
        """Return the stored thresholds, or None if nothing was saved yet."""

        ...

    def save(self, thresholds: TeamThresholds) -> None:
        ...


class RoleActuator(Protocol):
    """
    Applies badge role changes to guild members.

    The application layer never touches the chat SDK directly; it only sees
    opaque member objects handed back by `resolve_member`.
    """

    async def ensure_ready(self) -> None:
        """Raise `RoleConfigurationError` if any badge role cannot be found."""

        ...

    async def resolve_member(self, discord_id: str) -> Optional[Any]:
        """Return the guild member for `discord_id`, or None if they are not in the guild."""

        ...

    async def set_roles(
        self,
        member: Any,
        add: AbstractSet[RoleKind],
        remove: AbstractSet[RoleKind],
    ) -> None:
        """
        Grant `add` and revoke `remove` for `member`.

        Raises `RoleUpdateError` when the platform rejects the change.
        """

        ...
