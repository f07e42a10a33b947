"""Application state container."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .settings import RiskSettings


@dataclass
class AppState:
    """Settings and logger handed to every pipeline step.

    Kept explicit so tests can build one without touching globals.
    """

    settings: RiskSettings
    logger: logging.Logger
