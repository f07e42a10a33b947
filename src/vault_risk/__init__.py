"""Risk scoring for Morpho markets and vaults."""

__version__ = "0.1.0"
