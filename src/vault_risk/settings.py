"""Settings module with unified configuration precedence: CLI > ENV > CONFIG FILE."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .config import ScoringConfig
from .constants import (
    ALCHEMY_BASE_RPC_TEMPLATE,
    BASE_CHAIN_ID,
    DEFAULT_ADAPTER_LIMIT,
    DEFAULT_BASE_RPC_URL,
    DEFAULT_MARKET_LIMIT,
    DEFAULT_POSITION_LIMIT,
    MORPHO_API_URL,
)

load_dotenv()

SECRET_FIELDS = frozenset({"alchemy_api_key"})
CONFIG_ENV_VAR = "VAULT_RISK_CONFIG"


class RiskSettings(BaseSettings):
    """Single source of truth for configuration. Values may come from:
    - CLI (init kwargs)
    - ENV / .env (prefixed with VAULT_RISK_, nested with __)
    - Config file (TOML), lowest precedence

    Do not read os.environ or files elsewhere in the codebase.
    """

    # --- upstream endpoints ---
    morpho_api_url: str = MORPHO_API_URL
    chain_id: int = BASE_CHAIN_ID
    rpc_url: str | None = None
    alchemy_api_key: SecretStr | None = None

    # --- timeouts and retries ---
    api_timeout_seconds: float = Field(default=30.0, gt=0)
    api_max_tries: int = Field(default=3, ge=1)
    rpc_timeout_seconds: float = Field(default=10.0, gt=0)
    global_timeout_seconds: float | None = 300.0

    # --- query sizes ---
    adapter_limit: int = Field(default=DEFAULT_ADAPTER_LIMIT, ge=1)
    position_limit: int = Field(default=DEFAULT_POSITION_LIMIT, ge=1)
    market_limit: int = Field(default=DEFAULT_MARKET_LIMIT, ge=1)

    # --- scoring ---
    benchmark_rates: dict[str, float] = Field(default_factory=dict)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)

    # --- logging ---
    log_level: str = "INFO"

    # --- runtime computed values ---
    using_default_rpc: bool = False

    model_config = SettingsConfigDict(
        env_prefix="VAULT_RISK_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",  # ignore unknown keys in env/config file
    )

    @field_validator("alchemy_api_key", mode="before")
    @classmethod
    def wrap_secrets(cls, v: Any) -> SecretStr | None:
        """Wrap string secrets in SecretStr."""
        if v is None or isinstance(v, SecretStr):
            return v
        if isinstance(v, str) and not v.strip():
            return None
        return SecretStr(v)

    @field_validator("benchmark_rates", mode="after")
    @classmethod
    def normalize_benchmark_symbols(cls, v: dict[str, float]) -> dict[str, float]:
        """Benchmarks are keyed by upper-case loan-asset symbol."""
        return {symbol.upper(): rate for symbol, rate in v.items()}

    @field_validator("log_level", mode="after")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def set_derived_values(self) -> "RiskSettings":
        """Pick an RPC endpoint when none was configured explicitly."""
        if self.rpc_url is None:
            if self.alchemy_api_key is not None:
                self.rpc_url = ALCHEMY_BASE_RPC_TEMPLATE.format(
                    api_key=self.alchemy_api_key.get_secret_value()
                )
            else:
                self.rpc_url = DEFAULT_BASE_RPC_URL
                self.using_default_rpc = True
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Custom config-file source with explicit precedence: CLI > ENV > FILE."""
        env_cfg = os.environ.get(CONFIG_ENV_VAR)
        cfg_path = Path(env_cfg) if env_cfg else None

        class TomlConfigSource(PydanticBaseSettingsSource):
            def __init__(self, settings_cls: type[BaseSettings], path: Path | None):
                super().__init__(settings_cls)
                self._path = path

            def get_field_value(
                self, field: Any, field_name: str
            ) -> tuple[Any, str, bool]:
                return None, "", False

            def __call__(self) -> dict[str, Any]:
                if not self._path:
                    local_config = Path("vault-risk.toml")
                    user_config = Path.home() / ".config" / "vault-risk" / "config.toml"
                    if local_config.exists():
                        self._path = local_config
                    elif user_config.exists():
                        self._path = user_config
                    else:
                        return {}

                if not self._path.exists():
                    return {}

                with self._path.open("rb") as f:
                    data = tomllib.load(f)  # supports top-level or [vault_risk]
                body = data.get("vault_risk", data)
                if not isinstance(body, dict):
                    return {}

                for key in SECRET_FIELDS:
                    if key in body:
                        raise ValueError(
                            f"Security violation: '{key}' found in TOML config file. "
                            f"Secrets must only be provided via environment variables or CLI flags."
                        )

                return body

        return (
            init_settings,  # CLI (highest)
            env_settings,  # ENV
            dotenv_settings,  # .env
            TomlConfigSource(settings_cls, cfg_path),  # CONFIG (lowest)
            file_secret_settings,  # optional secrets dir
        )

    def as_safe_dict(self) -> dict[str, Any]:
        """Return the config as a dict with secrets redacted."""
        data = self.model_dump(mode="json")
        if self.alchemy_api_key:
            data["alchemy_api_key"] = "***redacted***"
            if self.rpc_url and self.alchemy_api_key.get_secret_value() in self.rpc_url:
                data["rpc_url"] = self.rpc_url.replace(
                    self.alchemy_api_key.get_secret_value(), "***redacted***"
                )
        return data

    @property
    def rpc_url_required(self) -> str:
        """Get rpc_url, raising ValueError if not set."""
        if self.rpc_url is None:
            raise ValueError("rpc_url must be configured")
        return self.rpc_url
