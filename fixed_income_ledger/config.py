"""Rebalancing configuration schemas and YAML loading.

``RebalanceConfig`` holds the operator-controlled policy parameters;
``RebalanceOptions`` holds the per-call guards a keeper passes to each
rebalance.

Example
-------
>>> from fixed_income_ledger.config import RebalanceConfig, load_config
>>> config = load_config("configs/rebalance.yaml", RebalanceConfig)
>>> config.target_idle_liquidity_bps
500
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Type, TypeVar, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

__all__ = ["RebalanceConfig", "RebalanceOptions", "ConfigError", "load_config", "save_config"]

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""


class RebalanceConfig(BaseModel):
    """Operator-configured rebalancing policy.

    Attributes
    ----------
    target_idle_liquidity_bps : int
        Idle balance kept back from deployment, in basis points of total assets.
    max_idle_liquidity_bps : int, optional
        Idle balance above which capital is deployed. Defaults to the target.
    minimum_transaction_amount : int, optional
        Trade floor. Defaults to the market's own minimum.
    partial_closure_buffer : float
        Extra fraction of bonds closed on partial closures, and the maximum
        relative divergence between a partial quote and the position's
        full-size price.
    position_closure_limit : int
        Maximum matured positions closed per rebalance.
    close_slippage_tolerance : float
        Default tolerance applied to close previews to derive minimum outputs.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    target_idle_liquidity_bps: int = Field(default=0, ge=0, le=10_000)
    max_idle_liquidity_bps: Optional[int] = Field(default=None, ge=0, le=10_000)
    minimum_transaction_amount: Optional[int] = Field(default=None, ge=0)
    partial_closure_buffer: float = Field(default=0.001, ge=0.0, lt=1.0)
    position_closure_limit: int = Field(default=10, ge=1)
    close_slippage_tolerance: float = Field(default=0.01, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_idle_bounds(self) -> "RebalanceConfig":
        if self.max_idle_liquidity_bps is not None and self.max_idle_liquidity_bps < self.target_idle_liquidity_bps:
            raise ValueError("max_idle_liquidity_bps must be >= target_idle_liquidity_bps")
        return self

    @property
    def effective_max_idle_liquidity_bps(self) -> int:
        if self.max_idle_liquidity_bps is None:
            return self.target_idle_liquidity_bps
        return self.max_idle_liquidity_bps


class RebalanceOptions(BaseModel):
    """Per-call guards supplied by the keeper."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_output: int = Field(default=0, ge=0, description="Minimum bonds received from an open")
    min_price: float = Field(default=0.0, ge=0.0, description="Minimum yield source share price on an open")
    close_slippage_tolerance: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    position_closure_limit: Optional[int] = Field(default=None, ge=1)


def _resolve_config_path(file_path: Union[str, Path]) -> Path:
    path = Path(file_path).expanduser()
    if path.exists():
        return path.resolve()
    raise FileNotFoundError(f"Config file not found: {file_path}")


def load_config(file_path: Union[str, Path], schema: Type[T] = RebalanceConfig) -> T:
    """Load a YAML file and validate it against ``schema``.

    Raises
    ------
    ConfigError
        If the file is missing, empty, not valid YAML, or fails validation.
    """
    try:
        resolved = _resolve_config_path(file_path)
        logger.debug("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {file_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {file_path}: {e}") from e

    if data is None:
        raise ConfigError(f"Empty configuration file: {file_path}")

    try:
        config = schema.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed for {file_path}:\n{e}") from e

    logger.info("Loaded config: %s", resolved.name)
    return config


def save_config(config: BaseModel, file_path: Union[str, Path]) -> Path:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="python", exclude_none=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)

    logger.info("Saved config: %s", path)
    return path
