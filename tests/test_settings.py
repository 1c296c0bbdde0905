import pytest

from payment_categorizer.core import settings
from payment_categorizer.manager import CategorizationEngine


def test_read_config_file(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "# comment\n"
        "ML_ACCEPT_THRESHOLD: 0.8  # stricter\n"
        "DATA_DIR: '/var/lib/categorizer'\n"
        "EMPTY:\n"
        "nested:\n"
        "  child: 1\n",
        encoding="utf-8",
    )

    values = settings.read_config_file(str(path))

    assert values["ML_ACCEPT_THRESHOLD"] == "0.8"
    assert values["DATA_DIR"] == "/var/lib/categorizer"
    assert "EMPTY" not in values
    assert settings.read_config_file(str(tmp_path / "missing.yaml")) == {}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("0.9", 0.9), ("1.5", 0.7), ("abc", 0.7), ("", 0.7)],
)
def test_accept_threshold_from_env(monkeypatch: pytest.MonkeyPatch, raw: str, expected: float) -> None:
    monkeypatch.setenv("ML_ACCEPT_THRESHOLD", raw)

    assert settings.ml_accept_threshold() == expected


def test_bool_and_int_helpers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("USE_DEFAULT_RULES", "off")
    monkeypatch.setenv("BATCH_WORKERS", "0")

    assert settings.use_default_rules() is False
    assert settings.batch_workers() == 1


def test_default_samples_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("USE_DEFAULT_SAMPLES", raising=False)
    assert settings.use_default_samples() is True

    monkeypatch.setenv("USE_DEFAULT_SAMPLES", "0")
    assert settings.use_default_samples() is False


def test_smoothing_alpha_must_be_positive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ML_SMOOTHING_ALPHA", "0")

    assert settings.ml_smoothing_alpha() == 1.0


def test_engine_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("USE_DEFAULT_RULES", "false")
    monkeypatch.setenv("ML_ACCEPT_THRESHOLD", "0.55")
    monkeypatch.setenv("PAYEE_FUZZY_THRESHOLD", "85")
    monkeypatch.setenv("BATCH_WORKERS", "3")

    engine = CategorizationEngine.from_settings()

    assert engine.rules == []
    assert engine.accept_threshold == 0.55
    assert engine.payees.fuzzy_threshold == 85.0
    assert engine.batch_workers == 3


def test_secrets_are_masked() -> None:
    assert settings._mask_env_value("API_TOKEN", "abcdef123") == "ab...23"
    assert settings._mask_env_value("API_TOKEN", "abc") == "****"
    assert settings._mask_env_value("LOG_LEVEL", "INFO") == "INFO"
