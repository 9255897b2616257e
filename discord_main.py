import logging
import os

from dotenv import load_dotenv

from application.reconciler import RoleSyncService
from application.thresholds import ThresholdStore
from infrastructure.db.link_token_repository_postgres import PostgresLinkTokenRepository
from infrastructure.db.link_token_repository_sqlite import SqliteLinkTokenRepository
from infrastructure.db.threshold_repository_postgres import PostgresThresholdSettingsRepository
from infrastructure.db.threshold_repository_sqlite import SqliteThresholdSettingsRepository
from infrastructure.db.user_repository_postgres import PostgresUserRepository
from infrastructure.db.user_repository_sqlite import SqliteUserRepository
from interfaces.discord.handlers import create_discord_bot
from interfaces.discord.settings import Settings, load_settings


load_dotenv()

log = logging.getLogger("moola")


def build_repositories(settings: Settings):
    """Postgres when DATABASE_URL is set, otherwise a local SQLite file."""

    if settings.database_url:
        db_params = {"dsn": settings.database_url}
        return (
            PostgresUserRepository(db_params),
            PostgresLinkTokenRepository(db_params),
            PostgresThresholdSettingsRepository(db_params),
        )

    return (
        SqliteUserRepository(settings.db_path),
        SqliteLinkTokenRepository(settings.db_path),
        SqliteThresholdSettingsRepository(settings.db_path),
    )


def main() -> None:
    settings = load_settings(os.environ)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    user_repo, token_repo, threshold_repo = build_repositories(settings)
    threshold_store = ThresholdStore(threshold_repo)
    thresholds = threshold_store.load()
    log.info("Active thresholds: winning=%s losing=%s", thresholds.winning, thresholds.losing)

    role_sync = RoleSyncService(
        user_repo,
        threshold_store,
        settings.excluded_users,
        tie_winner=settings.tie_winner,
        member_timeout=settings.role_sync_member_timeout,
    )

    bot = create_discord_bot(settings, user_repo, token_repo, threshold_store, role_sync)
    bot.run(settings.token, log_handler=None)


if __name__ == "__main__":
    main()
