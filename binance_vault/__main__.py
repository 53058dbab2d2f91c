"""Run the service: ``python -m binance_vault``."""
import logging

import asyncpg
from aiohttp import web

from .accounts import BinanceAccountStore
from .conf import AppConfig, configure_logging
from .symbols import UserSymbolStore
from .vault import CredentialVault
from .web import CLIENT_KEY, STORE_KEY, SYMBOLS_KEY, VAULT_KEY, create_app

logger = logging.getLogger("binance_vault")


def _database(dsn: str):
    async def ctx(app: web.Application):
        pool = await asyncpg.create_pool(dsn)
        try:
            store = BinanceAccountStore(pool, app[VAULT_KEY], app[CLIENT_KEY])
            await store.create_schema()
            # references binance_accounts
            symbols = UserSymbolStore(pool, store)
            await symbols.create_schema()
            app[STORE_KEY] = store
            app[SYMBOLS_KEY] = symbols
            logger.info("Account store ready")
            yield
        finally:
            await pool.close()
    return ctx


def main() -> None:
    config = AppConfig.from_env()
    configure_logging(config.log_level)
    # fatal when APP_ENC_KEY is missing or malformed
    vault = CredentialVault.from_env()

    app = create_app(config, vault)
    if config.database_url:
        app.cleanup_ctx.append(_database(config.database_url))
    else:
        logger.warning("DATABASE_URL not set: account routes are disabled")

    logger.info("Starting binance_vault on port %d (%s)", config.port, config.env)
    web.run_app(app, port=config.port, print=None)


if __name__ == "__main__":
    main()
