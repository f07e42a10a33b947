from __future__ import annotations

from .onchain import OnchainIrmReader, OnchainOracleReader

__all__ = ["OnchainIrmReader", "OnchainOracleReader"]
