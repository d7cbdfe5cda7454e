"""
Tests for TOML application config loading.
"""

from statquant.config.app_config import apply_api_settings, load_app_config


class TestLoadAppConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_app_config(tmp_path / "missing.toml")
        assert config.app.port == 8000
        assert config.api.base_url == "https://localhost:7188"
        assert config.refresh.interval_seconds == 1800
        assert config.refresh.highlight_seconds == 4.0
        assert config.dashboard.critical_threshold == 20
        assert config.dashboard.critical_limit == 10

    def test_overrides(self, tmp_path):
        path = tmp_path / "app.toml"
        path.write_text(
            "[api]\nbase_url = 'https://api.example'\nverify_tls = false\n"
            "[refresh]\ninterval_seconds = 60\n"
            "[dashboard]\ncritical_limit = 5\ncritical_threshold = -1\n",
            encoding="utf-8",
        )
        config = load_app_config(path)
        assert config.api.base_url == "https://api.example"
        assert config.api.verify_tls is False
        assert config.refresh.interval_seconds == 60
        assert config.dashboard.critical_limit == 5
        assert config.dashboard.critical_threshold == 20


class TestApplyApiSettings:
    def test_env_base_url_wins_over_config(self, tmp_path):
        config = load_app_config(tmp_path / "missing.toml")
        merged = apply_api_settings({"STATQUANT_BASE_URL": "https://env.test"}, config)
        assert merged["STATQUANT_BASE_URL"] == "https://env.test"
        assert merged["STATQUANT_OPEN_ORDERS_ENDPOINT"] == "/open"

    def test_override_wins(self, tmp_path):
        config = load_app_config(tmp_path / "missing.toml")
        merged = apply_api_settings({"STATQUANT_BASE_URL": "https://env.test"}, config, base_url_override="https://o.test")
        assert merged["STATQUANT_BASE_URL"] == "https://o.test"
