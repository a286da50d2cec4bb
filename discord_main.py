import asyncio
import logging

from config import Settings
from infrastructure.db.allow_list_repository_postgres import PostgresAllowListRepository
from infrastructure.db.allow_list_repository_sqlite import SqliteAllowListRepository
from infrastructure.db.binding_repository_postgres import PostgresIdentityBindingRepository
from infrastructure.db.binding_repository_sqlite import SqliteIdentityBindingRepository
from infrastructure.playfab.client import PlayFabDirectory
from interfaces.discord.handlers import create_discord_bot


log = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def build_repositories(settings: Settings):
    """Postgres when DATABASE_URL is set, otherwise a local SQLite file."""

    if settings.database_url:
        db_params = {"dsn": settings.database_url}
        return (
            PostgresIdentityBindingRepository(db_params),
            PostgresAllowListRepository(db_params),
        )
    return (
        SqliteIdentityBindingRepository(settings.db_path),
        SqliteAllowListRepository(settings.db_path),
    )


async def run(settings: Settings) -> None:
    bindings, allow_list = build_repositories(settings)
    directory = PlayFabDirectory(
        settings.playfab_title_id,
        session_ttl_seconds=settings.playfab_session_ttl_seconds,
        timeout_seconds=settings.playfab_timeout_seconds,
    )

    try:
        if not await directory.login():
            raise RuntimeError("PlayFab login failed at startup.")

        bot = create_discord_bot(settings, bindings, allow_list, directory)
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        await directory.close()


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
