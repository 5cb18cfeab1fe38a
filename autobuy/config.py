"""Application configuration.

Two sources:
- ``EnvSettings``: credentials and runtime options from the environment (and ``.env``)
- ``Configuration``: the desired portfolio and investment limits from ``<config_directory>/config.json``
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from autobuy.exceptions import ConfigurationError
from autobuy.models import TargetPosition

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
SESSION_FILE = "session"
LOG_FILE = "log.txt"


class EnvSettings(BaseSettings):
    """Settings loaded from environment."""

    # DEGIRO credentials
    degiro_username: str = ""
    degiro_password: str = ""
    degiro_otp_seed: Optional[str] = None

    # Files
    config_directory: Path = Path("config")

    # Scheduling
    schedule: str = "0 12 1 * *"  # Noon on the first day of every month
    buy_on_launch: bool = False

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def config_file(self) -> Path:
        return self.config_directory / CONFIG_FILE

    @property
    def session_file(self) -> Path:
        return self.config_directory / SESSION_FILE

    @property
    def log_file(self) -> Path:
        return self.config_directory / LOG_FILE


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid")


class PortfolioEntry(_ConfigModel):
    """A desired position as written in the config file (ratio not yet normalized)."""

    symbol: str = Field(..., min_length=1)
    isin: str = Field(..., min_length=1)
    exchange: int
    ratio: float = Field(..., gt=0)
    core: bool = False


class Configuration(_ConfigModel):
    """Desired portfolio and investment limits."""

    portfolio: list[PortfolioEntry] = Field(..., min_length=1)
    min_cash_invest: float = Field(..., ge=0)
    max_cash_invest: float = Field(..., gt=0)
    max_fee_percentage: Optional[float] = Field(default=None, ge=0)
    cash_currency: str = "EUR"
    allow_open_orders: bool = False
    use_limit_order: bool = True
    use_margin: bool = False  # Invest at least min_cash_invest, even when cash is lower
    dry_run: bool = True
    price_buffer: float = Field(default=0.02, ge=0)
    order_delay_seconds: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def _check_limits(self) -> "Configuration":
        if self.min_cash_invest > self.max_cash_invest:
            raise ValueError(
                f"minCashInvest ({self.min_cash_invest}) must not exceed maxCashInvest ({self.max_cash_invest})"
            )
        seen = set()
        for entry in self.portfolio:
            key = (entry.isin.upper(), entry.exchange)
            if key in seen:
                raise ValueError(f"Duplicate portfolio entry for {entry.isin} on exchange {entry.exchange}")
            seen.add(key)
        return self

    def target_positions(self) -> list[TargetPosition]:
        """Portfolio entries with ratios normalized to sum to 1, in configuration order."""
        total_ratio = sum(entry.ratio for entry in self.portfolio)
        return [
            TargetPosition(
                symbol=entry.symbol,
                isin=entry.isin,
                exchange=entry.exchange,
                ratio=entry.ratio / total_ratio,
                core=entry.core,
            )
            for entry in self.portfolio
        ]

    def investable_cash(self, cash: float) -> float:
        """Cash to invest this run, bounded by the configured limits and available funds."""
        investable = min(self.max_cash_invest, cash)
        if self.use_margin:
            investable = max(self.min_cash_invest, investable)
        return investable


def load_configuration(path: Path) -> Configuration:
    """
    Read and validate the JSON configuration file.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or fails validation
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"config file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e

    try:
        configuration = Configuration.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid {path}: {e}") from e

    logger.debug(f"Loaded configuration from {path} with {len(configuration.portfolio)} positions")
    return configuration
