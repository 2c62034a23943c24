import json
from decimal import Decimal

import pytest

from finance_engine import config


def test_load_config_reads_bundled_defaults():
    data = config.load_config(config.DEFAULT_CONFIG_PATH)
    assert data['synchronizer']['horizon_months'] == 12
    assert set(data['system_budgets']) == {'needs', 'wants', 'savings'}


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        config.load_config(tmp_path / 'missing.json')


def test_load_config_alternative_file(tmp_path):
    path = tmp_path / 'engine.json'
    path.write_text(json.dumps({'synchronizer': {'horizon_months': 3}}), encoding='utf-8')
    assert config.load_config(path)['synchronizer']['horizon_months'] == 3


def test_get_config_value_falls_back_to_default():
    assert config.get_config_value('system_budgets', 'wants', 'name') == 'Wants'
    assert config.get_config_value('nope', 'missing', default=7) == 7


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('FINANCE_ENGINE_HORIZON_MONTHS', '6')
    monkeypatch.setenv('FINANCE_ENGINE_HISTORY_MONTHS', '3')
    monkeypatch.setenv('FINANCE_ENGINE_SYNC_TOLERANCE', '0.5')
    assert config.get_horizon_months() == 6
    assert config.get_history_months() == 3
    assert config.get_sync_tolerance() == Decimal('0.5')


def test_bad_environment_values_are_ignored(monkeypatch):
    monkeypatch.setenv('FINANCE_ENGINE_HORIZON_MONTHS', 'twelve')
    monkeypatch.setenv('FINANCE_ENGINE_SYNC_TOLERANCE', 'tiny')
    assert config.get_horizon_months() == 12
    assert config.get_sync_tolerance() == Decimal('0.01')
