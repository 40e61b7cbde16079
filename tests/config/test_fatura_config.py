"""
Tests for fatura_config.get_active_config().

Covers the bundled default set, file / environment selection, overrides,
validation errors and the configuration trace log.
"""

from decimal import Decimal

import pytest

from fatura_config import CONFIG_ENV_VAR, ConfigurationError, get_active_config
from fatura_kernel.domain.policy import LedgerPolicy


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


def _write(tmp_path, text: str):
    path = tmp_path / "fatura.yaml"
    path.write_text(text)
    return path


class TestDefaultSet:

    def test_defaults(self):
        settings = get_active_config()

        assert settings.config_id == "default"
        assert settings.database.url.startswith("sqlite:///")
        assert settings.logging.level == "INFO"
        assert isinstance(settings.policy, LedgerPolicy)
        assert settings.policy.payment_tolerance == Decimal("0.00")
        assert settings.policy.max_conflict_retries == 3
        assert settings.policy.track_payable_forecast is True
        assert len(settings.checksum) == 64

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum


class TestSelection:

    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path, "config_id: custom\npayments:\n  tolerance: '0.10'\n")
        settings = get_active_config(path)
        assert settings.config_id == "custom"
        assert settings.policy.payment_tolerance == Decimal("0.10")

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "config_id: from-env\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert get_active_config().config_id == "from-env"

    def test_empty_file_uses_defaults(self, tmp_path):
        settings = get_active_config(_write(tmp_path, ""))
        assert settings.policy == LedgerPolicy()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_overrides_merge_deeply(self):
        settings = get_active_config(
            overrides={"database": {"url": "sqlite:///:memory:"}, "storage": {"max_conflict_retries": 5}}
        )
        assert settings.database.url == "sqlite:///:memory:"
        assert settings.database.pool_size == 10
        assert settings.policy.max_conflict_retries == 5


class TestValidation:

    @pytest.mark.parametrize(
        "overrides,key",
        [
            ({"payments": {"tolerance": "abc"}}, "payments.tolerance"),
            ({"storage": {"max_conflict_retries": "many"}}, "storage.max_conflict_retries"),
            ({"invoices": {"track_payable_forecast": "yes"}}, "invoices.track_payable_forecast"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
            ({"database": "sqlite://"}, "database"),
        ],
    )
    def test_bad_values(self, overrides, key):
        with pytest.raises(ConfigurationError) as exc_info:
            get_active_config(overrides=overrides)
        assert exc_info.value.key == key

    def test_negative_tolerance(self):
        with pytest.raises(ConfigurationError):
            get_active_config(overrides={"payments": {"tolerance": "-0.01"}})

    def test_negative_retries(self):
        with pytest.raises(ConfigurationError):
            get_active_config(overrides={"storage": {"max_conflict_retries": -1}})

    def test_non_mapping_document(self, tmp_path):
        with pytest.raises(ConfigurationError):
            get_active_config(_write(tmp_path, "- just\n- a list\n"))


class TestTrace:

    def test_trace_logged(self, captured_logs):
        settings = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "FATURA_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == settings.checksum
        assert traces[0]["config_id"] == "default"
