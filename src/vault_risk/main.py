"""CLI entrypoint for vault-risk."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from .errors import MorphoApiError, NotFoundError
from .logger import setup_logging
from .settings import CONFIG_ENV_VAR, RiskSettings
from .state import AppState

T = TypeVar("T")

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    add_help_option=True,
    pretty_exceptions_enable=True,
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
    help="Risk scores for Morpho markets and vaults.",
)

OverrideOption = Annotated[
    list[str] | None,
    typer.Option(
        "--set",
        "-s",
        help="Scoring override as key=value (e.g. utilizationCeiling=0.85, weight.stressExposure=0.4). Repeatable.",
    ),
]
JsonOption = Annotated[
    bool, typer.Option("--json", help="Print the result as JSON instead of tables.")
]


def _build_logger() -> logging.Logger:
    return logging.getLogger("vault_risk")


def parse_pairs(values: list[str] | None, option: str) -> dict[str, str]:
    """Parse repeated key=value options into a dict."""
    pairs: dict[str, str] = {}
    for raw in values or []:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {raw!r}", param_hint=option)
        pairs[key.strip()] = value.strip()
    return pairs


def _state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if not isinstance(state, AppState):
        raise typer.BadParameter("application state was not initialised")
    return state


def _execute(state: AppState, coro: Coroutine[Any, Any, T]) -> T:
    """Run a pipeline coroutine, turning expected failures into exit code 1."""
    try:
        return asyncio.run(coro)
    except NotFoundError as e:
        state.logger.error("%s", e)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    except (MorphoApiError, TimeoutError) as e:
        state.logger.error("Risk pipeline failed: %s", e)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


def _print_json(data: dict[str, Any]) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML config file (can include [vault_risk] table).",
        ),
    ] = None,
    rpc_url: Annotated[
        str | None,
        typer.Option("--rpc-url", help="RPC endpoint used for oracle and IRM reads."),
    ] = None,
    chain_id: Annotated[
        int | None,
        typer.Option("--chain-id", help="Chain queried on the Morpho API (default Base)."),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Override logging verbosity (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL).",
        ),
    ] = None,
    show_config: Annotated[
        bool,
        typer.Option(
            "--show-config",
            help="Print effective config (with secrets redacted) and exit.",
        ),
    ] = False,
):
    """Load configuration once and hand it to the selected command."""
    if config_path:
        os.environ[CONFIG_ENV_VAR] = str(config_path)

    init_kwargs: dict[str, str | int] = {}
    if rpc_url is not None:
        init_kwargs["rpc_url"] = rpc_url
    if chain_id is not None:
        init_kwargs["chain_id"] = chain_id
    if log_level is not None:
        init_kwargs["log_level"] = log_level.upper()

    settings = RiskSettings(**init_kwargs)

    setup_logging(settings.log_level)
    logger = _build_logger()
    ctx.obj = AppState(settings=settings, logger=logger)

    if settings.using_default_rpc:
        logger.debug("Using public RPC %s", settings.rpc_url)

    if show_config:
        _print_json(settings.as_safe_dict())
        raise typer.Exit(code=0)


@app.command("vault-v1")
def vault_v1(
    ctx: typer.Context,
    address: Annotated[str, typer.Argument(help="V1 (MetaMorpho) vault address.")],
    overrides: OverrideOption = None,
    as_json: JsonOption = False,
):
    """Score a V1 vault across its market allocations."""
    from .pipeline.run import run_v1_vault
    from .report import format_v1_vault, v1_vault_to_dict

    state = _state(ctx)
    risk = _execute(
        state, run_v1_vault(state, address, parse_pairs(overrides, "--set"))
    )
    if as_json:
        _print_json(v1_vault_to_dict(risk))
    else:
        format_v1_vault(risk)


@app.command("vault-v2")
def vault_v2(
    ctx: typer.Context,
    address: Annotated[str, typer.Argument(help="V2 vault address.")],
    overrides: OverrideOption = None,
    as_json: JsonOption = False,
):
    """Score a V2 vault through its adapters."""
    from .pipeline.run import run_v2_vault
    from .report import format_v2_vault, v2_vault_to_dict

    state = _state(ctx)
    risk = _execute(
        state, run_v2_vault(state, address, parse_pairs(overrides, "--set"))
    )
    if as_json:
        _print_json(v2_vault_to_dict(risk))
    else:
        format_v2_vault(risk)


@app.command("market")
def market(
    ctx: typer.Context,
    unique_key: Annotated[str, typer.Argument(help="Market unique key.")],
    overrides: OverrideOption = None,
    as_json: JsonOption = False,
):
    """Score a single market on its own."""
    from .pipeline.run import run_market
    from .report import format_market, market_record_to_dict

    state = _state(ctx)
    record = _execute(
        state, run_market(state, unique_key, parse_pairs(overrides, "--set"))
    )
    if as_json:
        _print_json(market_record_to_dict(record))
    else:
        format_market(record)


@app.command("markets")
def markets(
    ctx: typer.Context,
    market_id: Annotated[
        str | None,
        typer.Option("--market-id", help="Only rate the market with this id or unique key."),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", min=1, help="Number of markets to fetch."),
    ] = None,
    benchmarks: Annotated[
        list[str] | None,
        typer.Option(
            "--benchmark",
            "-b",
            help="Benchmark supply rate per loan symbol as SYMBOL=rate (e.g. USDC=0.045). Repeatable.",
        ),
    ] = None,
    group_by_symbol: Annotated[
        bool,
        typer.Option("--group-by-symbol", help="Add a loan-symbol grouping to JSON output."),
    ] = False,
    overrides: OverrideOption = None,
    as_json: JsonOption = False,
):
    """Curator ratings for markets, best first."""
    from .config import coerce_number
    from .pipeline.run import run_ratings
    from .report import format_ratings, ratings_response

    state = _state(ctx)
    benchmark_rates: dict[str, float] = {}
    for symbol, raw in parse_pairs(benchmarks, "--benchmark").items():
        rate = coerce_number(raw)
        if rate is None:
            raise typer.BadParameter(
                f"benchmark for {symbol} must be a number, got {raw!r}",
                param_hint="--benchmark",
            )
        benchmark_rates[symbol] = rate

    ratings = _execute(
        state,
        run_ratings(
            state,
            limit=limit,
            market_id=market_id,
            overrides=parse_pairs(overrides, "--set"),
            benchmark_rates=benchmark_rates,
        ),
    )
    if as_json:
        _print_json(ratings_response(ratings, group_by=group_by_symbol))
    else:
        format_ratings(ratings)


def run() -> None:
    """Entrypoint used by the console script."""
    app()


if __name__ == "__main__":
    run()
