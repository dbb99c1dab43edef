"""
Unit tests for Config (environment) and LedgerSettings (YAML tunables).
"""

import pytest

from credit_ledger.core.config.config import Config
from credit_ledger.core.config.settings import LedgerSettings
from credit_ledger.core.exceptions import ConfigurationError


class TestEnvironmentParsing:
    def test_safe_int_reads_env(self, monkeypatch):
        monkeypatch.setenv("STORAGE_TIMEOUT_SECONDS", "9")

        assert Config._safe_int("STORAGE_TIMEOUT_SECONDS", 5, min_val=1) == 9

    @pytest.mark.parametrize("raw", ["abc", "0", "100000"])
    def test_safe_int_falls_back(self, monkeypatch, raw):
        monkeypatch.setenv("STORAGE_TIMEOUT_SECONDS", raw)

        assert Config._safe_int("STORAGE_TIMEOUT_SECONDS", 5, min_val=1, max_val=300) == 5

    @pytest.mark.parametrize(
        "raw,expected", [("yes", True), ("OFF", False), ("1", True), ("maybe", False)]
    )
    def test_safe_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("DATABASE_ECHO", raw)

        assert Config._safe_bool("DATABASE_ECHO", False) is expected

    def test_optional_bool_unset(self, monkeypatch):
        monkeypatch.delenv("LOG_JSON", raising=False)

        assert Config._safe_optional_bool("LOG_JSON") is None

    def test_load_picks_up_environment(self, monkeypatch):
        monkeypatch.setenv("DAILY_BONUS_TIMEZONE", "Europe/Berlin")
        monkeypatch.setattr(Config, "DAILY_BONUS_TIMEZONE", Config.DAILY_BONUS_TIMEZONE)

        Config.load()

        assert Config.DAILY_BONUS_TIMEZONE == "Europe/Berlin"

    def test_testing_environment(self):
        assert Config.is_testing()
        assert not Config.is_production()


class TestLedgerSettings:
    def test_defaults(self, settings):
        assert settings.daily_bonus_base == 10
        assert settings.daily_bonus_streak_step == 2
        assert settings.daily_bonus_streak_cap == 14
        assert settings.purchase_bonus_percent == 10
        assert settings.referral_amounts("signup") == (50, 25)
        assert set(settings.referral_types) == {"signup", "purchase", "achievement"}
        assert len(settings.products) == 4

    def test_yaml_files_merge_over_defaults(self, tmp_path):
        (tmp_path / "a_bonus.yaml").write_text("daily_bonus:\n  base: 20\n")
        (tmp_path / "b_referral.yml").write_text(
            "referral:\n  amounts:\n    signup:\n      referee: 60\n      referrer: 30\n"
        )

        settings = LedgerSettings.load(tmp_path)

        assert settings.daily_bonus_base == 20
        assert settings.daily_bonus_streak_step == 2
        assert settings.referral_amounts("signup") == (60, 30)
        assert settings.referral_amounts("purchase") == (20, 30)

    def test_missing_directory_uses_defaults(self, tmp_path):
        settings = LedgerSettings.load(tmp_path / "absent")

        assert settings.daily_bonus_base == 10

    def test_non_mapping_root_ignored(self, tmp_path):
        (tmp_path / "list.yaml").write_text("- 1\n- 2\n")

        assert LedgerSettings.load(tmp_path).daily_bonus_base == 10

    def test_unreadable_yaml(self, tmp_path):
        (tmp_path / "broken.yaml").write_text("daily_bonus: [unclosed\n")

        with pytest.raises(ConfigurationError):
            LedgerSettings.load(tmp_path)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"daily_bonus": {"base": -1}},
            {"purchase": {"bonus_percent": 150}},
            {"referral": {"amounts": {"signup": {"referee": "fifty"}}}},
            {"products": {"credits_starter": 12}},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ConfigurationError):
            LedgerSettings.from_overrides(overrides)

    def test_dot_lookup(self, settings):
        assert settings.get("referral.amounts.signup.referee") == 50
        assert settings.get("referral.amounts.birthday", "none") == "none"

    def test_products_are_copies(self, settings):
        settings.products[0]["credits"] = 999

        assert settings.products[0]["credits"] == 12
