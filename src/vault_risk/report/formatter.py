"""Rich console tables for vault risk and curator ratings."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

from ..domain import (
    AdapterRisk,
    CuratorRating,
    Grade,
    MarketRiskRecord,
    SkippedLeg,
    V1VaultRisk,
    VaultRisk,
)

GRADE_STYLES = {"A": "green", "B": "cyan", "C": "yellow", "D": "red", "F": "bold red"}


def _grade(grade: Grade | None) -> str:
    if grade is None:
        return "[dim]n/a[/]"
    style = GRADE_STYLES.get(grade.value[0], "white")
    return f"[{style}]{grade.value}[/]"


def _usd(value: float | None) -> str:
    if value is None:
        return "[dim]-[/]"
    if abs(value) >= 1_000_000:
        return f"${value / 1_000_000:,.2f}M"
    if abs(value) >= 1_000:
        return f"${value / 1_000:,.1f}K"
    return f"${value:,.2f}"


def _score(value: float | None) -> str:
    return "[dim]-[/]" if value is None else f"{value:.1f}"


def _truncate_address(address: str) -> str:
    return f"{address[:10]}...{address[-4:]}" if len(address) > 16 else address


def _skipped_note(skipped: Sequence[SkippedLeg]) -> str:
    total = sum(leg.allocation_usd for leg in skipped)
    reasons = "; ".join(sorted({leg.reason for leg in skipped}))
    return f"[yellow]Skipped {len(skipped)} allocation(s) ({_usd(total)}):[/] {reasons}"


def _markets_table(records: Sequence[MarketRiskRecord]) -> Table:
    table = Table(expand=True, show_lines=False)
    table.add_column("Market", style="cyan", no_wrap=True)
    table.add_column("Allocation", justify="right")
    table.add_column("Oracle", justify="right")
    table.add_column("Util", justify="right")
    table.add_column("Headroom", justify="right")
    table.add_column("Coverage", justify="right")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Grade", justify="center")

    for record in records:
        if record.is_idle or record.scores is None:
            table.add_row(
                f"{record.market.pair_label} [dim](idle)[/]",
                _usd(record.allocation_usd),
                "", "", "", "", "[dim]idle[/]", "",
                style="dim",
            )
            continue
        scores = record.scores
        table.add_row(
            record.market.pair_label,
            _usd(record.allocation_usd),
            _score(scores.oracle_score),
            _score(scores.utilization_score),
            _score(scores.liquidation_headroom_score),
            _score(scores.coverage_ratio_score),
            _score(scores.market_risk_score),
            _grade(scores.grade),
        )
    return table


def _summary(rows: list[tuple[str, str]]) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="dim")
    table.add_column("Value", style="cyan")
    for key, value in rows:
        table.add_row(key, value)
    return table


def format_v1_vault(risk: V1VaultRisk, console: Console | None = None) -> None:
    console = console or Console()
    summary = _summary(
        [
            ("Vault", _truncate_address(risk.vault_address)),
            ("Name", risk.name or "-"),
            ("Liquidity", _usd(risk.liquidity_usd)),
            ("Risk Score", _score(risk.risk_score)),
            ("Grade", _grade(risk.grade)),
        ]
    )
    console.print(
        Panel(
            Group(
                summary,
                "",
                _markets_table(risk.markets),
                *([_skipped_note(risk.skipped_legs)] if risk.skipped_legs else []),
            ),
            title="[bold]V1 Vault Risk[/]",
            border_style="blue",
        )
    )


def _adapter_panel(adapter: AdapterRisk) -> Panel:
    header = _summary(
        [
            ("Adapter", _truncate_address(adapter.address)),
            ("Kind", adapter.kind.value),
            ("Allocation", _usd(adapter.allocation_usd)),
            ("Score", _score(adapter.risk_score)),
            ("Grade", _grade(adapter.grade)),
        ]
    )
    if not adapter.resolved:
        body = Group(header, f"[red]Unresolved:[/] {adapter.error or 'unknown error'}")
        return Panel(body, title=f"[bold]{adapter.label}[/]", border_style="red")
    return Panel(
        Group(
            header,
            "",
            _markets_table(adapter.markets),
            *([_skipped_note(adapter.skipped_legs)] if adapter.skipped_legs else []),
        ),
        title=f"[bold]{adapter.label}[/]",
        border_style="cyan",
    )


def format_v2_vault(risk: VaultRisk, console: Console | None = None) -> None:
    console = console or Console()
    summary = _summary(
        [
            ("Vault", _truncate_address(risk.vault_address)),
            ("Asset", risk.asset_symbol or "-"),
            ("Total Assets", _usd(risk.total_assets_usd)),
            ("Risk Score", _score(risk.risk_score)),
            ("Grade", _grade(risk.grade)),
        ]
    )
    console.print(
        Panel(
            Group(summary, "", *(_adapter_panel(a) for a in risk.adapters)),
            title="[bold white]V2 Vault Risk[/]",
            border_style="white",
            padding=(1, 2),
        )
    )


def format_market(record: MarketRiskRecord, console: Console | None = None) -> None:
    console = console or Console()
    console.print(
        Panel(_markets_table([record]), title="[bold]Market Risk[/]", border_style="blue")
    )


def format_ratings(ratings: Sequence[CuratorRating], console: Console | None = None) -> None:
    console = console or Console()
    table = Table(expand=True)
    table.add_column("Market", style="cyan", no_wrap=True)
    table.add_column("TVL", justify="right")
    table.add_column("Util", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Stress", justify="right")
    table.add_column("Withdraw", justify="right")
    table.add_column("Liq Cap", justify="right")
    table.add_column("Rating", justify="right", style="bold")
    table.add_column("Tier")

    for rating in ratings:
        c = rating.components
        pair = f"{rating.collateral_symbol or 'idle'}/{rating.symbol}"
        table.add_row(
            f"{pair} [dim]{rating.market_id[:10]}[/]",
            _usd(rating.metrics.tvl_usd),
            _score(c.utilization * 100),
            _score(c.rate_alignment * 100),
            _score(c.stress_exposure * 100),
            _score(c.withdrawal_liquidity * 100),
            _score(c.liquidation_capacity * 100),
            "[dim]-[/]" if rating.rating is None else str(rating.rating),
            rating.tier,
        )
    console.print(Panel(table, title="[bold]Curator Ratings[/]", border_style="green"))
