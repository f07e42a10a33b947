from .base import BaseOnchainReader
from .irm import OnchainIrmReader
from .oracle import OnchainOracleReader

__all__ = ["BaseOnchainReader", "OnchainIrmReader", "OnchainOracleReader"]
