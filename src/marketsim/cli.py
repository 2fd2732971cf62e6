"""marketsim CLI."""

import asyncio
import logging

import click

from marketsim.app import MarketSimApp
from marketsim.constants import ChartWindow, StockFilter
from marketsim.market.bootstrap import seed_store
from marketsim.market.queries import day_change_percent, filter_stocks

config_option = click.option(
    "--config",
    type=click.Path(),
    default="config/config.yaml",
    help="Path to configuration file",
)
data_dir_option = click.option("--data-dir", help="Override the data directory")


async def _open_app(config, data_dir, seed: bool = True) -> MarketSimApp:
    app = MarketSimApp(config_path=config, data_dir=data_dir, drive_market=False)
    await app.initialize(seed=seed)
    app.service.refresh()
    return app


def _login(app: MarketSimApp, user: str, password: str) -> bool:
    result = app.service.login(user, password)
    if not result.ok:
        click.echo(f"Login failed: {result.message}", err=True)
    return result.ok


@click.group()
def cli():
    """marketsim Command Line Interface."""
    pass


@cli.command()
@config_option
@data_dir_option
@click.option("--tick-interval", type=int, help="Override tick interval (ms)")
@click.option("--memory", is_flag=True, help="Use an in-memory store instead of the JSON file")
@click.option("--observer", is_flag=True, help="Follow the market without driving ticks")
def run(config, data_dir, tick_interval, memory, observer):
    """Run a market client until interrupted."""
    try:
        app = MarketSimApp(
            config_path=config,
            tick_interval_ms=tick_interval,
            store_backend="memory" if memory else None,
            data_dir=data_dir,
            drive_market=not observer,
        )
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        click.echo(f"Fatal error: {e}", err=True)
        raise SystemExit(1) from e


@cli.command()
@config_option
@data_dir_option
@click.option("--force", is_flag=True, help="Overwrite existing stocks, users and market state")
def seed(config, data_dir, force):
    """Write the default stocks and users to the store."""

    async def _seed():
        app = await _open_app(config, data_dir, seed=False)
        return await seed_store(
            app.store,
            admin_username=app.config.accounts.admin_username,
            admin_password=app.config.accounts.admin_password,
            force=force,
        )

    written = asyncio.run(_seed())
    click.echo(f"Seeded: {', '.join(written)}" if written else "Store already seeded.")


@cli.command()
@config_option
@data_dir_option
@click.option("--search", default="", help="Match ticker or name")
@click.option(
    "--filter",
    "stock_filter",
    type=click.Choice([f.value for f in StockFilter]),
    help="Price or market-cap band",
)
def stocks(config, data_dir, search, stock_filter):
    """List stocks."""

    async def _stocks():
        app = await _open_app(config, data_dir)
        return filter_stocks(app.service.snapshot.stocks, search, stock_filter)

    for stock in asyncio.run(_stocks()):
        click.echo(
            f"{stock.ticker:<6} {stock.name:<28} {stock.price:>10.2f} "
            f"{day_change_percent(stock):>+7.2f}%  cap {stock.market_cap / 1e9:,.1f}B"
        )


@cli.command()
@config_option
@data_dir_option
@click.argument("ticker")
@click.option(
    "--window",
    type=click.Choice([w.value for w in ChartWindow]),
    default=ChartWindow.ONE_DAY.value,
    help="Chart window",
)
def series(config, data_dir, ticker, window):
    """Print the price series for TICKER."""

    async def _series():
        app = await _open_app(config, data_dir)
        return app.service.get_series(ticker.upper(), window)

    for point in asyncio.run(_series()):
        volume = point.get("volume")
        suffix = f"  vol {volume:,}" if volume is not None else ""
        click.echo(f"{point['time']:<14} {point['price']:>10.2f}{suffix}")


def _trade_command(side: str):
    @config_option
    @data_dir_option
    @click.option("--user", required=True, help="Account name")
    @click.option("--password", required=True, help="Account password")
    @click.argument("ticker")
    @click.argument("quantity", type=int)
    def command(config, data_dir, user, password, ticker, quantity):
        async def _trade():
            app = await _open_app(config, data_dir)
            if not _login(app, user, password):
                return None
            execute = app.service.buy if side == "buy" else app.service.sell
            return await execute(ticker.upper(), quantity)

        result = asyncio.run(_trade())
        if result is None:
            raise SystemExit(1)
        if not result.accepted:
            click.echo(f"Rejected: {result.reason}", err=True)
            raise SystemExit(1)
        record = result.record
        click.echo(
            f"{side.upper()} {record.quantity} {record.ticker} @ {record.price:.2f} "
            f"total {record.total:,.2f}, price now {record.new_price:.2f}"
        )

    command.__doc__ = f"{side.capitalize()} QUANTITY shares of TICKER."
    return command


cli.command(name="buy")(_trade_command("buy"))
cli.command(name="sell")(_trade_command("sell"))


@cli.group()
def market():
    """Admin market controls."""
    pass


def _market_command(running: bool):
    @config_option
    @data_dir_option
    @click.option("--user", default="admin", help="Admin account name")
    @click.option("--password", required=True, help="Admin password")
    def command(config, data_dir, user, password):
        async def _toggle():
            app = await _open_app(config, data_dir)
            if not _login(app, user, password):
                return None
            if running:
                return await app.service.start_market()
            return await app.service.stop_market()

        result = asyncio.run(_toggle())
        if result is None or not result.ok:
            if result is not None:
                click.echo(f"Rejected: {result.message}", err=True)
            raise SystemExit(1)
        click.echo(f"Market {'started' if running else 'stopped'}.")

    command.__doc__ = f"{'Start' if running else 'Stop'} the market."
    return command


market.command(name="start")(_market_command(True))
market.command(name="stop")(_market_command(False))


main = cli

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    cli()
