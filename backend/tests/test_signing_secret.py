"""Tests for signing secret resolution"""
import pytest

from scriptdesk.config import Settings
from scriptdesk.errors import NotConfiguredError
from scriptdesk.utils import signing_secret
from scriptdesk.utils.signing_secret import SecretSource


def _settings(**values) -> Settings:
    base = {"SESSION_SECRET": None, "TURNSTILE_SECRET_KEY": None, "APP_ENV": "production"}
    base.update(values)
    return Settings(_env_file=None, **base)


def test_configured_secret_is_used():
    source = SecretSource(_settings(SESSION_SECRET="  configured  "))
    assert source.get_signing_secret() == "configured"
    assert source.get_verification_pass_secret() == "configured"


@pytest.mark.parametrize("env", ["production", "staging", "test", "", "Develop"])
def test_missing_secret_fails_closed_outside_development(env):
    source = SecretSource(_settings(APP_ENV=env))
    with pytest.raises(NotConfiguredError):
        source.get_signing_secret()


def test_blank_secret_counts_as_missing():
    source = SecretSource(_settings(SESSION_SECRET="   "))
    with pytest.raises(NotConfiguredError):
        source.get_signing_secret()


def test_development_generates_one_ephemeral_secret(monkeypatch):
    monkeypatch.setattr(signing_secret, "_dev_secret", None)

    first = SecretSource(_settings(APP_ENV="development")).get_signing_secret()
    second = SecretSource(_settings(APP_ENV="development")).get_signing_secret()

    assert first.startswith("dev-")
    assert len(first) > 40
    assert first == second


def test_pass_secret_falls_back_to_captcha_secret():
    source = SecretSource(_settings(TURNSTILE_SECRET_KEY="turnstile-secret"))

    assert source.get_verification_pass_secret() == "turnstile-secret"
    with pytest.raises(NotConfiguredError):
        source.get_signing_secret()


def test_pass_secret_missing_everywhere():
    with pytest.raises(NotConfiguredError):
        SecretSource(_settings()).get_verification_pass_secret()


def test_settings_carry_no_server_bind_address():
    """Bind address and port belong to the ASGI server's own flags"""
    fields = Settings.model_fields
    assert "HOST" not in fields
    assert "PORT" not in fields
