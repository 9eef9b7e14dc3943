"""
Unit tests for registrar configuration loading.
"""

import json

import pytest
from pathlib import Path

from namebid.core.config import (
    DEFAULT_BID_PERIOD,
    DEFAULT_REVEAL_PERIOD,
    ELIGIBILITY_MODULUS,
    RegistrarConfig,
    load_config,
)

ENV_VARS = (
    "NAMEBID_BID_PERIOD",
    "NAMEBID_REVEAL_PERIOD",
    "NAMEBID_ELIGIBILITY_MODULUS",
    "NAMEBID_LAUNCH_TICK",
    "NAMEBID_DATA_DIR",
    "NAMEBID_LOG_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also removes values a .env file loaded
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestRegistrarConfig:
    """Tests for the config dataclass."""

    def test_defaults(self):
        config = RegistrarConfig()
        assert config.bid_period == DEFAULT_BID_PERIOD
        assert config.reveal_period == DEFAULT_REVEAL_PERIOD
        assert config.eligibility_modulus == ELIGIBILITY_MODULUS == 52
        assert config.launch_tick is None

    def test_rejects_zero_period(self):
        with pytest.raises(ValueError):
            RegistrarConfig(bid_period=0)
        with pytest.raises(ValueError):
            RegistrarConfig(reveal_period=-5)

    def test_rejects_negative_launch(self):
        with pytest.raises(ValueError):
            RegistrarConfig(launch_tick=-1)

    def test_paths_coerced(self):
        config = RegistrarConfig(data_dir="somewhere")
        assert isinstance(config.data_dir, Path)

    def test_ensure_dirs(self, tmp_path):
        config = RegistrarConfig(data_dir=tmp_path / "d", log_dir=tmp_path / "l")
        config.ensure_dirs()
        assert (tmp_path / "d").is_dir()
        assert (tmp_path / "l").is_dir()


class TestLoadConfig:
    """Defaults, then environment, then JSON file."""

    def test_defaults_without_sources(self):
        config = load_config()
        assert config.bid_period == DEFAULT_BID_PERIOD

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("NAMEBID_BID_PERIOD", "100")
        monkeypatch.setenv("NAMEBID_DATA_DIR", "/tmp/namebid-data")
        config = load_config()
        assert config.bid_period == 100
        assert config.data_dir == Path("/tmp/namebid-data")

    def test_environment_bad_integer(self, monkeypatch):
        monkeypatch.setenv("NAMEBID_REVEAL_PERIOD", "soon")
        with pytest.raises(ValueError):
            load_config()

    def test_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("NAMEBID_REVEAL_PERIOD=77\n")
        config = load_config(env_file=str(env_file))
        assert config.reveal_period == 77

    def test_file_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NAMEBID_BID_PERIOD", "100")
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"bid_period": 200, "launch_tick": 5}))
        config = load_config(str(path))
        assert config.bid_period == 200
        assert config.launch_tick == 5

    def test_file_unknown_key(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"bid_periods": 200}))
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_file_invalid_value(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"reveal_period": 0}))
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_file_not_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("bid_period = 3")
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(str(tmp_path / "missing.json"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
