from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Collection, List, Optional

from domain.errors import ThresholdConfigError
from domain.models import LinkToken, RoleKind, Standing, Team, TeamTotals, UserAccount
from domain.repositories import LinkTokenRepository, UserRepository

from .thresholds import ThresholdStore, winning_team

LEADERBOARD_SIZE = 10


@dataclass
class ExternalContext:
    """
    Information about the caller from the chat platform.

    The application layer never depends on concrete SDK types; it only sees
    this small context object.
    """

    provider_user_id: str
    display_name: str


@dataclass
class OperationResult:
    """Generic result type for simple operations."""

    success: bool
    message: str = ""
    user: Optional[UserAccount] = None


@dataclass
class LinkResult:
    """Result of asking for a wallet link or wallet update URL."""

    success: bool
    message: str
    url: Optional[str] = None
    token: Optional[str] = None


@dataclass
class WarStatus:
    totals: TeamTotals
    leader: Team


@dataclass
class LeaderboardEntry:
    rank: int
    discord_id: str
    points: Decimal


@dataclass
class Leaderboard:
    entries: List[LeaderboardEntry] = field(default_factory=list)


def _validate_positive_amount(amount) -> Optional[str]:
    if amount is None or amount <= 0:
        return "Amount must be greater than zero."
    return None


def _new_token() -> str:
    return str(uuid.uuid4())


def _issue_token(
    discord_id: str,
    token_repo: LinkTokenRepository,
    token_factory: Callable[[], str],
) -> str:
    token = token_factory()
    token_repo.insert_token(LinkToken(token=token, discord_id=discord_id, used=False))
    return token


def request_wallet_link(
    external_ctx: ExternalContext,
    user_repo: UserRepository,
    token_repo: LinkTokenRepository,
    link_base_url: str,
    token_factory: Callable[[], str] = _new_token,
) -> LinkResult:
    """
    Start linking a Discord account to a wallet address.

    Users that already exist are told which address they are linked to;
    everyone else gets a one-time link to the web flow.
    """

    discord_id = external_ctx.provider_user_id
    existing = user_repo.get_user(discord_id)
    if existing is not None:
        return LinkResult(
            success=False,
            message=f"You have already linked your account. Your linked account: `{existing.address}`",
        )

    token = _issue_token(discord_id, token_repo, token_factory)
    url = f"{link_base_url.rstrip('/')}/game?token={token}&discord={discord_id}"
    return LinkResult(
        success=True,
        message=(
            f"Hey {external_ctx.display_name}, to link your Discord account to your "
            f"address click this link: \n\n{url} "
        ),
        url=url,
        token=token,
    )


def request_wallet_update(
    external_ctx: ExternalContext,
    user_repo: UserRepository,
    token_repo: LinkTokenRepository,
    link_base_url: str,
    token_factory: Callable[[], str] = _new_token,
) -> LinkResult:
    """Issue a one-time link for changing an already linked wallet address."""

    discord_id = external_ctx.provider_user_id
    user = user_repo.get_user(discord_id)
    if user is None:
        return LinkResult(
            success=False,
            message="You haven't linked a wallet yet. Please use /wankme first.",
        )

    token = _issue_token(discord_id, token_repo, token_factory)
    url = f"{link_base_url.rstrip('/')}/update-wallet?token={token}&discord={discord_id}"
    return LinkResult(
        success=True,
        message=(
            f"To update your wallet address, please click this link:\n\n{url}\n\n"
            f"Your current wallet: `{user.address}`"
        ),
        url=url,
        token=token,
    )


def get_balance(discord_id: str, user_repo: UserRepository) -> OperationResult:
    user = user_repo.get_user(discord_id)
    if user is None:
        return OperationResult(
            success=False,
            message="You need to link your account first. Please use the `/wankme` command to get started.",
        )
    return OperationResult(success=True, message=f"You have {user.points} moola. 🍯", user=user)


def transfer_points(
    sender_id: str,
    receiver_id: str,
    amount: int,
    user_repo: UserRepository,
) -> OperationResult:
    """
    Move points between two linked users:
    - The sender must hold at least `amount`.
    - Both balances change in one repository transaction.
    """

    error = _validate_positive_amount(amount)
    if error:
        return OperationResult(success=False, message=error)

    if sender_id == receiver_id:
        return OperationResult(success=False, message="You cannot transfer points to yourself.")

    sender = user_repo.get_user(sender_id)
    if sender is None:
        return OperationResult(success=False, message="You need to link your account before transferring points.")

    transfer_amount = Decimal(amount)
    if sender.points < transfer_amount:
        return OperationResult(success=False, message="Insufficient points to transfer.")

    receiver = user_repo.get_user(receiver_id)
    if receiver is None:
        return OperationResult(success=False, message="The specified user does not exist.")

    user_repo.transfer(sender.discord_id, receiver.discord_id, transfer_amount)

    return OperationResult(
        success=True,
        message=f"Successfully transferred {amount} points to <@{receiver_id}>.",
    )


def fine_user(target_id: str, amount: int, user_repo: UserRepository) -> OperationResult:
    error = _validate_positive_amount(amount)
    if error:
        return OperationResult(success=False, message="Please provide a valid user and a positive amount.")

    user = user_repo.get_user(target_id)
    if user is None:
        return OperationResult(success=False, message="User not found.")

    fine_amount = Decimal(amount)
    if user.points < fine_amount:
        return OperationResult(success=False, message="The user doesn't have enough points for this fine.")

    updated = user.points - fine_amount
    user_repo.update_points(target_id, updated)
    user.points = updated

    return OperationResult(
        success=True,
        message=(
            f"Successfully fined <@{target_id}> {amount} points. "
            f"Their new balance is {updated} points."
        ),
        user=user,
    )


def can_choose_team(discord_id: str, user_repo: UserRepository) -> OperationResult:
    """A user may pick a team once, and only after linking a wallet."""

    user = user_repo.get_user(discord_id)
    if user is None:
        return OperationResult(
            success=False,
            message="You need to link your account first. Please use the `/wankme` command to get started.",
        )
    if user.team is not None:
        return OperationResult(
            success=False,
            message=f"You have already joined the {user.team.value} team. You cannot change your team.",
            user=user,
        )
    return OperationResult(success=True, user=user)


def choose_team(discord_id: str, team: Team, user_repo: UserRepository) -> OperationResult:
    check = can_choose_team(discord_id, user_repo)
    if not check.success:
        return check

    user_repo.set_team(discord_id, team)
    user = check.user
    user.team = team
    return OperationResult(
        success=True,
        message=f"You have joined the {team.value.capitalize()} team!",
        user=user,
    )


def war_status(
    user_repo: UserRepository,
    excluded: Collection[str] = (),
    tie_winner: Team = Team.BERAS,
) -> WarStatus:
    totals = user_repo.get_team_totals(excluded)
    return WarStatus(totals=totals, leader=winning_team(totals.bullas, totals.beras, tie_winner))


def leaderboard(
    user_repo: UserRepository,
    excluded: Collection[str] = (),
    limit: int = LEADERBOARD_SIZE,
    team: Optional[Team] = None,
) -> Leaderboard:
    users = user_repo.get_top_users(limit=limit, team=team, excluded=excluded)
    entries = [
        LeaderboardEntry(rank=index, discord_id=user.discord_id, points=user.points)
        for index, user in enumerate(users, start=1)
    ]
    return Leaderboard(entries=entries)


def update_threshold(
    store: ThresholdStore,
    standing: Standing,
    role: RoleKind,
    minimum: int,
) -> OperationResult:
    try:
        store.update(standing, role, minimum)
    except ThresholdConfigError:
        return OperationResult(
            success=False,
            message="Please provide a valid positive integer for the new minimum.",
        )
    return OperationResult(
        success=True,
        message=f"{standing.value} team {role.value} threshold updated to {minimum} MOOLA.",
    )
