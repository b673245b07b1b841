import io
import json
import logging

import pytest
from pydantic import ValidationError

from fixed_income_ledger.config import (
    ConfigError,
    RebalanceConfig,
    RebalanceOptions,
    load_config,
    save_config,
)
from fixed_income_ledger.logging_conf import configure_logging


def test_defaults():
    config = RebalanceConfig()
    assert config.target_idle_liquidity_bps == 0
    assert config.effective_max_idle_liquidity_bps == 0
    assert config.minimum_transaction_amount is None
    assert config.position_closure_limit >= 1


def test_max_idle_must_not_be_below_target():
    with pytest.raises(ValidationError):
        RebalanceConfig(target_idle_liquidity_bps=500, max_idle_liquidity_bps=100)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"target_idle_liquidity_bps": 10_001},
        {"partial_closure_buffer": -0.1},
        {"position_closure_limit": 0},
        {"unknown_field": 1},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValidationError):
        RebalanceConfig(**kwargs)


def test_options_validation():
    assert RebalanceOptions().min_output == 0
    with pytest.raises(ValidationError):
        RebalanceOptions(close_slippage_tolerance=2.0)


def test_yaml_round_trip(tmp_path):
    config = RebalanceConfig(
        target_idle_liquidity_bps=500,
        max_idle_liquidity_bps=1_000,
        minimum_transaction_amount=10**15,
        position_closure_limit=3,
    )
    path = save_config(config, tmp_path / "configs" / "rebalance.yaml")
    assert load_config(path, RebalanceConfig) == config


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")

    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(empty)

    broken = tmp_path / "broken.yaml"
    broken.write_text("target_idle_liquidity_bps: [1, 2\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(broken)

    invalid = tmp_path / "invalid.yaml"
    invalid.write_text("position_closure_limit: 0\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(invalid)


def test_structured_logging_emits_json():
    stream = io.StringIO()
    logger = configure_logging(level=logging.INFO, structured=True, stream=stream, context={"keeper": "k1"})
    try:
        logging.getLogger("fixed_income_ledger.rebalancer").info("rebalanced", extra={"freed": 5})
        record = json.loads(stream.getvalue().strip().splitlines()[-1])
    finally:
        logger.handlers.clear()

    assert record["message"] == "rebalanced"
    assert record["keeper"] == "k1"
    assert record["freed"] == 5
    assert record["logger"] == "fixed_income_ledger.rebalancer"
