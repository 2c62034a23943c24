"""Configuration management for the finance engine.

This module centralizes tunable values (history lookback, synchronizer
horizon, system budget labels) stored in ``data/engine.json`` and lets
environment variables override the most common ones.

The goal frequency constants (4.33 weeks and 2.16 fortnights per month)
are engine constants and deliberately live in ``goals.py`` instead.
"""

from __future__ import annotations

import json
import os
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

_PACKAGE_ROOT = Path(__file__).parent.resolve()

DEFAULT_CONFIG_PATH = _PACKAGE_ROOT / "data" / "engine.json"

CONFIG_PATH = Path(os.getenv("FINANCE_ENGINE_CONFIG", DEFAULT_CONFIG_PATH)).resolve()


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """Load the engine configuration file.

    Args:
        path: Optional alternative JSON file. Defaults to ``CONFIG_PATH``.

    Returns:
        Dictionary containing the configuration

    Raises:
        FileNotFoundError: If the configuration file doesn't exist
        json.JSONDecodeError: If the configuration file is invalid JSON

    Example:
        >>> config = load_config()
        >>> config['synchronizer']['horizon_months']
        12
    """
    target = path or CONFIG_PATH
    if not target.exists():
        raise FileNotFoundError(f"Configuration file not found: {target}")

    with open(target, 'r', encoding='utf-8') as f:
        return json.load(f)


@lru_cache(maxsize=1)
def get_engine_config() -> Dict[str, Any]:
    """Get the engine configuration, loaded once per process."""
    return load_config()


def get_config_value(*keys: str, default: Any = None) -> Any:
    """Get a nested configuration value by key path.

    Example:
        >>> get_config_value('system_budgets', 'needs', 'name')
        'Needs'
    """
    try:
        value = get_engine_config()
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError, FileNotFoundError):
        return default


def _env_int(name: str, fallback: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def get_history_months() -> int:
    """Number of full past months fed to the projection engine."""
    return _env_int(
        "FINANCE_ENGINE_HISTORY_MONTHS",
        int(get_config_value('calculations', 'history_months', default=6)),
    )


def get_income_lookback_months() -> int:
    return int(get_config_value('calculations', 'income_lookback_months', default=3))


def get_horizon_months() -> int:
    """Number of months (current month included) the synchronizer keeps materialized."""
    return _env_int(
        "FINANCE_ENGINE_HORIZON_MONTHS",
        int(get_config_value('synchronizer', 'horizon_months', default=12)),
    )


def get_sync_tolerance() -> Decimal:
    """Smallest budget amount change the synchronizer will write."""
    raw = os.getenv("FINANCE_ENGINE_SYNC_TOLERANCE") or get_config_value(
        'synchronizer', 'update_tolerance', default='0.01'
    )
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        return Decimal("0.01")


def get_system_budget_labels() -> Dict[str, Dict[str, Any]]:
    """Display name, color and order for each system budget type."""
    return get_config_value('system_budgets', default={}) or {}
