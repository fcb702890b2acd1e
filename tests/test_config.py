"""Config loading, profile overlay and accessors."""

from pathlib import Path

from markstr.config import Settings, get_settings, load_config
from markstr.models import Network

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


def test_default_profile():
    s = get_settings(config_dir=CONFIG_DIR)
    assert s.network is Network.REGTEST
    assert s.tx_version == 3
    assert s.withdraw_timeout == 86400
    fees = s.market_fees()
    assert fees.fee_per_deposit_output == 1000
    assert fees.fee_per_withdraw_output == 600
    assert fees.administrator_address is None
    assert s.logging_format == "console"


def test_signet_profile_overlays_default():
    raw = load_config("signet", CONFIG_DIR)
    assert raw["network"]["name"] == "signet"
    assert raw["fees"]["fee_per_withdraw_output"] == 600
    s = Settings.from_dict(raw)
    assert s.network is Network.SIGNET
    assert s.tx_version == 2
    assert s.logging_format == "json"


def test_missing_profile_falls_back_to_default():
    assert load_config("nope", CONFIG_DIR) == load_config(None, CONFIG_DIR)


def test_explicit_overrides(tmp_path):
    (tmp_path / "default.toml").write_text(
        '[network]\nname = "mainnet"\ntx_version = 3\n'
        '[fees]\nadministrator_fee = 2500\nadministrator_address = "bc1qexample"\n'
        '[logging]\nlevel = "debug"\n'
    )
    s = get_settings(config_dir=tmp_path)
    assert s.network is Network.MAINNET
    assert s.tx_version == 3
    assert s.market_fees().administrator_fee == 2500
    assert s.logging_level == "DEBUG"
    assert s.logging_level_num == 10


def test_empty_config_dir_uses_builtin_defaults(tmp_path):
    s = get_settings(config_dir=tmp_path)
    assert s.network is Network.REGTEST
    assert s.db_path == "data/markstr.duckdb"
    assert s.market_fees().administrator_fee == 0
