from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..adapters.onchain import OnchainIrmReader, OnchainOracleReader
from ..clients.morpho_api import MorphoApiClient
from ..config import ScoringConfig
from ..domain import OracleTimestampData
from ..state import AppState


@dataclass
class PipelineContext:
    """Everything one scoring request needs; discarded when the request ends.

    The lookup maps hold one task per oracle/feed pair and per IRM address so
    markets sharing an oracle or IRM only hit the chain once per request.
    """

    state: AppState
    client: MorphoApiClient
    oracle_reader: OnchainOracleReader
    irm_reader: OnchainIrmReader
    config: ScoringConfig
    benchmark_rates: dict[str, float] = field(default_factory=dict)
    oracle_lookups: dict[
        tuple[str, str | None], asyncio.Task[OracleTimestampData]
    ] = field(default_factory=dict)
    irm_lookups: dict[str, asyncio.Task[float | None]] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        state: AppState,
        overrides: Mapping[str, Any] | None = None,
        benchmark_rates: Mapping[str, float] | None = None,
    ) -> "PipelineContext":
        """Build a context with the configured collaborators.

        Args:
            state: Application state
            overrides: Per-request scoring overrides merged over the configured values
            benchmark_rates: Per-request benchmarks by loan symbol, merged over settings
        """
        s = state.settings
        return cls(
            state=state,
            client=MorphoApiClient(s),
            oracle_reader=OnchainOracleReader(s),
            irm_reader=OnchainIrmReader(s),
            config=s.scoring.with_overrides(overrides),
            benchmark_rates={
                **s.benchmark_rates,
                **{k.upper(): v for k, v in (benchmark_rates or {}).items()},
            },
        )

    def benchmark_for(self, symbol: str | None) -> float | None:
        if not symbol:
            return None
        return self.benchmark_rates.get(symbol.upper())

    async def close(self) -> None:
        for task in [*self.oracle_lookups.values(), *self.irm_lookups.values()]:
            if not task.done():
                task.cancel()
        await self.oracle_reader.close()
        await self.irm_reader.close()
        self.client.close()
