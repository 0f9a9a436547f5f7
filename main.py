"""
Connection check: authenticate, load markets and read account state.
"""

from __future__ import annotations

import asyncio
import sys

from dotenv import load_dotenv

# Load environment variables before other imports that may read them.
load_dotenv()

from config.settings import load_exchange_settings
from exchange.errors import ExchangeError, RegistrationFundingError
from exchange.models import AssetKind
from exchange.paradex_client import ParadexClient
from infra.logger import get_logger
from infra.metrics import LoggingMetrics

TEST_SYMBOL = "BTC-USD-PERP"
SAMPLE_MARKETS = 5


async def check_connection(symbol: str = TEST_SYMBOL) -> None:
    logger = get_logger("Main")
    settings = load_exchange_settings({"enabled": True})

    async with ParadexClient(settings, metrics=LoggingMetrics()) as client:
        await client.initialize()
        logger.info("Paradex account address: %s", client.address)

        markets = await client.get_markets()
        logger.info("Loaded %s markets", len(markets))
        for market in [m for m in markets if m.asset_kind is AssetKind.PERP][:SAMPLE_MARKETS]:
            logger.info("  %s: %s/%s", market.symbol, market.base_currency, market.quote_currency)

        try:
            price = await client.get_price(symbol)
            logger.info("%s mark price: $%.2f", symbol, price)
            info = await client.get_market_info(symbol)
            if info is not None:
                logger.info(
                    "  order size increment=%s tick=%s min notional=$%s",
                    info.order_size_increment,
                    info.price_tick_size,
                    info.min_notional,
                )
        except ExchangeError as exc:
            logger.warning("Market %s not available: %s", symbol, exc)

        try:
            balance = await client.get_balance()
            logger.info(
                "Account equity: $%.2f unrealized P&L: $%.2f", balance["balance"], balance["unrealized_pnl"]
            )
        except ExchangeError as exc:
            logger.warning("Could not fetch balance (deposit funds first?): %s", exc)

        try:
            positions = await client.get_positions()
            logger.info("Open positions: %s", len(positions))
            for position in positions:
                logger.info(
                    "  %s: %s %s @ $%s upnl=$%s",
                    position.market,
                    position.side,
                    position.size,
                    position.entry_price,
                    position.unrealized_pnl,
                )
        except ExchangeError as exc:
            logger.warning("Could not fetch positions: %s", exc)


def main() -> int:
    logger = get_logger("Main")
    symbol = sys.argv[1] if len(sys.argv) > 1 else TEST_SYMBOL
    try:
        asyncio.run(check_connection(symbol))
    except RegistrationFundingError as exc:
        logger.error("Account registration needs funding: %s", exc)
        return 1
    except (ExchangeError, ValueError) as exc:
        logger.error("Connection check failed: %s", exc)
        logger.error("Check PARADEX_PRIVATE_KEY, PARADEX_ACCOUNT_ADDRESS and PARADEX_ENVIRONMENT in .env")
        return 1
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        return 1
    logger.info("Connection check complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
