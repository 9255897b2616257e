from __future__ import annotations

import asyncio
import logging
from typing import Set

import discord
from discord import app_commands
from discord.ext import commands, tasks

from application.reconciler import RoleSyncReport, RoleSyncService
from application.services import (
    ExternalContext,
    can_choose_team,
    choose_team,
    fine_user,
    get_balance,
    leaderboard,
    request_wallet_link,
    request_wallet_update,
    transfer_points,
    update_threshold,
    war_status,
)
from application.snapshot import take_snapshot
from application.thresholds import ThresholdStore
from domain.errors import MoolaError, RoleSyncInProgress
from domain.models import RoleKind, Standing, Team
from domain.repositories import LinkTokenRepository, UserRepository
from infrastructure.discord.role_actuator import DiscordRoleActuator, badges_held

from .settings import Settings

log = logging.getLogger(__name__)

TEAM_BUTTON_IDS = {Team.BULLAS: "bullButton", Team.BERAS: "bearButton"}
TEAM_LABELS = {Team.BULLAS: "🐂 Bullas", Team.BERAS: "🐻 Beras"}

NO_PERMISSION = "You don't have permission to use this command."


def _build_external_context(user: discord.abc.User) -> ExternalContext:
    """Create an `ExternalContext` from a Discord user."""

    return ExternalContext(
        provider_user_id=str(user.id),
        display_name=user.display_name or user.name,
    )


def has_admin_role(member, admin_role_ids) -> bool:
    roles = getattr(member, "roles", None)
    if not roles:
        return False
    return any(role.id in admin_role_ids for role in roles)


class TeamSelectView(discord.ui.View):
    """
    Two persistent buttons for picking a team.

    Whoever clicks joins the team themselves; the prompt is removed after a
    successful pick.
    """

    def __init__(self, settings: Settings, user_repo: UserRepository) -> None:
        super().__init__(timeout=None)
        self._settings = settings
        self._user_repo = user_repo
        for team in Team:
            button = discord.ui.Button(
                label=TEAM_LABELS[team],
                style=discord.ButtonStyle.primary,
                custom_id=TEAM_BUTTON_IDS[team],
            )
            button.callback = self._make_callback(team)
            self.add_item(button)

    def _make_callback(self, team: Team):
        async def callback(interaction: discord.Interaction) -> None:
            await self._join(interaction, team)

        return callback

    async def _join(self, interaction: discord.Interaction, team: Team) -> None:
        if interaction.guild is None or not isinstance(interaction.user, discord.Member):
            return

        result = await asyncio.to_thread(
            choose_team, str(interaction.user.id), team, self._user_repo
        )
        if not result.success:
            await interaction.response.send_message(result.message, ephemeral=True)
            return

        await self._swap_team_roles(interaction.user, team)
        await interaction.response.send_message(result.message, ephemeral=True)

        if interaction.message is not None:
            try:
                await interaction.message.delete()
            except discord.HTTPException as exc:
                log.warning("Could not delete team prompt %s: %s", interaction.message.id, exc)

    async def _swap_team_roles(self, member: discord.Member, team: Team) -> None:
        guild = member.guild
        held = {role.id for role in member.roles}
        to_remove = []
        new_member_role = guild.get_role(self._settings.new_member_role_id or 0)
        if new_member_role is not None and new_member_role.id in held:
            to_remove.append(new_member_role)
        opposite = guild.get_role(self._settings.team_role_ids.get(team.opponent, 0))
        if opposite is not None and opposite.id in held:
            to_remove.append(opposite)
        team_role = guild.get_role(self._settings.team_role_ids.get(team, 0))

        try:
            if to_remove:
                await member.remove_roles(*to_remove, reason="Team selected")
            if team_role is not None:
                await member.add_roles(team_role, reason="Team selected")
            else:
                log.warning("Role for team %s is not configured", team.value)
        except discord.HTTPException as exc:
            log.warning("Could not update team roles for user %s: %s", member.id, exc)


class MoolaBot(commands.Bot):
    """Bot that owns the periodic role sync and its shutdown."""

    def __init__(self, settings: Settings, user_repo: UserRepository, role_sync: RoleSyncService) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        super().__init__(command_prefix="!", intents=intents, help_command=None)
        self.settings = settings
        self.role_sync = role_sync
        self.user_repo = user_repo
        self.team_view: TeamSelectView | None = None
        self.role_sync_loop = tasks.loop(hours=settings.role_sync_interval_hours)(self._scheduled_role_sync)
        self.role_sync_loop.before_loop(self._wait_ready)

    async def setup_hook(self) -> None:
        # Views need a running event loop, so they are built here.
        self.team_view = TeamSelectView(self.settings, self.user_repo)
        self.add_view(self.team_view)
        synced = await self.tree.sync()
        log.info("Registered %d application commands", len(synced))
        if self.settings.guild_id is not None:
            self.role_sync_loop.start()
        else:
            log.warning("GUILD_ID is not set, scheduled role sync is disabled")

    async def close(self) -> None:
        self.role_sync.request_stop()
        self.role_sync_loop.cancel()
        await super().close()

    async def _wait_ready(self) -> None:
        await self.wait_until_ready()

    async def run_role_sync(self, guild: discord.Guild) -> RoleSyncReport:
        actuator = DiscordRoleActuator(guild, self.settings.badge_role_ids)
        return await self.role_sync.run(actuator)

    async def _scheduled_role_sync(self) -> None:
        log.info("Running scheduled role update job")
        guild = self.get_guild(self.settings.guild_id)
        if guild is None:
            log.error("Guild %s not found for scheduled role update", self.settings.guild_id)
            return
        try:
            report = await self.run_role_sync(guild)
        except RoleSyncInProgress:
            log.info("Skipping scheduled role update, a sync is already running")
        except MoolaError:
            log.exception("Scheduled role update aborted")
        except Exception:
            # An exception escaping here would stop the loop for good.
            log.exception("Scheduled role update failed")
        else:
            log.info("Scheduled role update finished: %s", report.summary())


def create_discord_bot(
    settings: Settings,
    user_repo: UserRepository,
    token_repo: LinkTokenRepository,
    threshold_store: ThresholdStore,
    role_sync: RoleSyncService,
) -> MoolaBot:
    """
    Configure and return the moola bot: slash commands, team buttons, the
    new-member role hook and the scheduled role sync.
    """

    bot = MoolaBot(settings, user_repo, role_sync)
    excluded = settings.excluded_users

    def is_admin(interaction: discord.Interaction) -> bool:
        return has_admin_role(interaction.user, settings.admin_role_ids)

    async def deny(interaction: discord.Interaction) -> None:
        await interaction.response.send_message(NO_PERMISSION, ephemeral=True)

    def held_badges(guild: discord.Guild, discord_id: str) -> Set[RoleKind]:
        try:
            member = guild.get_member(int(discord_id))
        except (TypeError, ValueError):
            return set()
        if member is None:
            return set()
        return badges_held(member, settings.badge_role_ids)

    async def sync_and_describe(guild: discord.Guild) -> str:
        try:
            report = await bot.run_role_sync(guild)
        except RoleSyncInProgress:
            return "A role update is already running. Try again once it finishes."
        except MoolaError as exc:
            log.exception("Manual role update aborted")
            return f"Failed to update roles: {exc}"
        return f"Roles have been updated. {report.summary()}"

    @bot.event
    async def on_ready():
        log.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.event
    async def on_member_join(member: discord.Member):
        role = member.guild.get_role(settings.new_member_role_id or 0)
        if role is None:
            return
        try:
            await member.add_roles(role, reason="New member")
        except discord.HTTPException as exc:
            log.warning("Could not add new member role to %s: %s", member, exc)
            return
        log.info("Added new member role to %s", member)

    @bot.tree.error
    async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
        name = interaction.command.name if interaction.command else "?"
        log.error("Error handling /%s", name, exc_info=error)
        text = f"An error occurred while processing the {name} command."
        if interaction.response.is_done():
            await interaction.followup.send(text, ephemeral=True)
        else:
            await interaction.response.send_message(text, ephemeral=True)

    @bot.tree.command(name="updateroles", description="Manually update roles")
    async def updateroles_cmd(interaction: discord.Interaction):
        if not is_admin(interaction):
            await deny(interaction)
            return
        if interaction.guild is None:
            await interaction.response.send_message("Failed to update roles: Guild not found.")
            return

        await interaction.response.defer()
        await interaction.edit_original_response(content=await sync_and_describe(interaction.guild))

    @bot.tree.command(name="transfer", description="Transfer points to another user")
    @app_commands.describe(user="The user to transfer points to", amount="The amount of points to transfer")
    async def transfer_cmd(interaction: discord.Interaction, user: discord.User, amount: int):
        if not is_admin(interaction):
            await deny(interaction)
            return

        result = await asyncio.to_thread(
            transfer_points, str(interaction.user.id), str(user.id), amount, user_repo
        )
        await interaction.response.send_message(result.message)

    @bot.tree.command(name="wankme", description="Link your Discord account to your address")
    async def wankme_cmd(interaction: discord.Interaction):
        result = await asyncio.to_thread(
            request_wallet_link,
            _build_external_context(interaction.user),
            user_repo,
            token_repo,
            settings.link_base_url,
        )
        # Only the link itself is private; "already linked" replies are public.
        await interaction.response.send_message(result.message, ephemeral=result.success)

    @bot.tree.command(name="updatewallet", description="Update your connected wallet address")
    async def updatewallet_cmd(interaction: discord.Interaction):
        result = await asyncio.to_thread(
            request_wallet_update,
            _build_external_context(interaction.user),
            user_repo,
            token_repo,
            settings.link_base_url,
        )
        await interaction.response.send_message(result.message, ephemeral=True)

    @bot.tree.command(name="moola", description="Check your moola balance")
    async def moola_cmd(interaction: discord.Interaction):
        result = await asyncio.to_thread(get_balance, str(interaction.user.id), user_repo)
        if not result.success:
            await interaction.response.send_message(result.message, ephemeral=True)
            return

        embed = discord.Embed(
            title=f"{interaction.user.name}'s moola",
            description=result.message,
            color=0xFFD700,
            timestamp=discord.utils.utcnow(),
        )
        embed.set_thumbnail(url=interaction.user.display_avatar.url)
        await interaction.response.send_message(embed=embed)

    @bot.tree.command(name="team", description="Choose your team")
    async def team_cmd(interaction: discord.Interaction):
        check = await asyncio.to_thread(can_choose_team, str(interaction.user.id), user_repo)
        if not check.success:
            await interaction.response.send_message(check.message, ephemeral=True)
            return

        embed = discord.Embed(
            title="Choose Your Team",
            description=(
                "Are you a bulla or a bera? Click the button to choose your team "
                "and get the corresponding role."
            ),
            color=0x0099FF,
        )
        await interaction.response.send_message(embed=embed, view=bot.team_view)

    @bot.tree.command(name="warstatus", description="Check the current war status")
    async def warstatus_cmd(interaction: discord.Interaction):
        status = await asyncio.to_thread(war_status, user_repo, excluded, settings.tie_winner)
        embed = discord.Embed(
            title="🏆 Moola War Status",
            description="Current team standings (excluding admin accounts)",
            color=0xFF0000,
            timestamp=discord.utils.utcnow(),
        )
        embed.add_field(name="🐂 Bullas", value=f"{status.totals.bullas:,} mL", inline=True)
        embed.add_field(name="🐻 Beras", value=f"{status.totals.beras:,} mL", inline=True)
        await interaction.response.send_message(embed=embed)

    @bot.tree.command(name="leaderboard", description="View the leaderboard")
    async def leaderboard_cmd(interaction: discord.Interaction):
        board = await asyncio.to_thread(leaderboard, user_repo, excluded)
        embed = discord.Embed(title="🏆 Moola Leaderboard", color=0xFFD700)
        for entry in board.entries:
            embed.add_field(
                name=f"{entry.rank}.",
                value=f"<@{entry.discord_id}> 🍯 {entry.points} mL",
                inline=False,
            )
        await interaction.response.send_message(embed=embed)

    @bot.tree.command(name="snapshot", description="Take a snapshot of the current standings")
    async def snapshot_cmd(interaction: discord.Interaction):
        if not is_admin(interaction):
            await deny(interaction)
            return
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message("Error: Could not find guild.")
            return

        await interaction.response.defer()
        snapshot = await asyncio.to_thread(
            take_snapshot,
            user_repo,
            lambda discord_id: held_badges(guild, discord_id),
            settings.snapshot_dir,
            excluded,
            settings.tie_winner,
        )
        try:
            await interaction.edit_original_response(
                content="Here are the snapshot files:",
                attachments=[discord.File(path) for path in snapshot.paths],
            )
        finally:
            snapshot.cleanup()

    @bot.tree.command(name="fine", description="Fine a user")
    @app_commands.describe(user="The user to fine", amount="The amount to fine")
    async def fine_cmd(interaction: discord.Interaction, user: discord.User, amount: int):
        if not is_admin(interaction):
            await deny(interaction)
            return

        result = await asyncio.to_thread(fine_user, str(user.id), amount, user_repo)
        await interaction.response.send_message(result.message)

    @bot.tree.command(name="updatewhitelistminimum", description="Update the whitelist minimum")
    @app_commands.describe(
        minimum="The new minimum value",
        team="The team to update (winning/losing)",
        role="The role to update",
    )
    @app_commands.choices(
        team=[
            app_commands.Choice(name="Winning Team", value=Standing.WINNING.value),
            app_commands.Choice(name="Losing Team", value=Standing.LOSING.value),
        ],
        role=[
            app_commands.Choice(name="Whitelist", value=RoleKind.WHITELIST.value),
            app_commands.Choice(name="Moolalist", value=RoleKind.MOOLALIST.value),
            app_commands.Choice(name="Free Mint", value=RoleKind.FREE_MINT.value),
        ],
    )
    async def updatewhitelistminimum_cmd(
        interaction: discord.Interaction,
        minimum: int,
        team: app_commands.Choice[str],
        role: app_commands.Choice[str],
    ):
        if not is_admin(interaction):
            await deny(interaction)
            return

        result = await asyncio.to_thread(
            update_threshold,
            threshold_store,
            Standing(team.value),
            RoleKind(role.value),
            minimum,
        )
        await interaction.response.send_message(result.message)
        if not result.success or interaction.guild is None:
            return

        await interaction.followup.send(await sync_and_describe(interaction.guild))

    return bot

