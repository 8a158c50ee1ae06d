import pytest
from pydantic import ValidationError

from core.config import ClientSettings, Environment
from domain.common.exceptions import ConfigurationException
from infrastructure.external.payments import create_payment_service, get_webhook_parser


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("API_KEY", "WEBHOOK_SECRET", "ENVIRONMENT", "BASE_URL", "WAIT__POLL_INTERVAL", "WAIT__TIMEOUT"):
        monkeypatch.delenv(f"CRYPTOPAY__{name}", raising=False)


def test_defaults():
    s = ClientSettings(_env_file=None)
    assert s.environment is Environment.PRODUCTION
    assert s.resolved_base_url == "https://api.cryptopay.io/v1"
    assert s.timeout == 30.0
    assert s.retry.max == 2
    assert s.wait.accept_partial is False
    assert s.webhook.signature_header == "X-CryptoPay-Signature"
    assert s.webhook.tolerance_seconds is None


def test_values_are_read_from_prefixed_env(monkeypatch):
    monkeypatch.setenv("CRYPTOPAY__API_KEY", "cp_test_abc")
    monkeypatch.setenv("CRYPTOPAY__ENVIRONMENT", "sandbox")
    monkeypatch.setenv("CRYPTOPAY__WAIT__POLL_INTERVAL", "2.5")
    s = ClientSettings(_env_file=None)
    assert s.api_key == "cp_test_abc"
    assert s.resolved_base_url == "https://sandbox.cryptopay.io/v1"
    assert s.expected_key_prefix == "cp_test_"
    assert s.wait.poll_interval == 2.5


def test_base_url_override_drops_trailing_slash():
    s = ClientSettings(_env_file=None, base_url="http://localhost:8080/v1/")
    assert s.resolved_base_url == "http://localhost:8080/v1"


def test_blank_secrets_are_treated_as_missing():
    s = ClientSettings(_env_file=None, api_key="  ", webhook_secret="")
    assert s.api_key is None
    with pytest.raises(ConfigurationException):
        s.require_api_key()
    with pytest.raises(ConfigurationException) as exc_info:
        get_webhook_parser(s).parse(b"{}", "00" * 32)
    assert exc_info.value.field == "webhook_secret"


def test_settings_are_immutable():
    s = ClientSettings(_env_file=None)
    with pytest.raises(ValidationError):
        s.timeout = 1


def test_invalid_durations_are_rejected():
    with pytest.raises(ValidationError):
        ClientSettings(_env_file=None, wait={"poll_interval": 0})


@pytest.mark.asyncio
async def test_service_factory_wires_settings(settings):
    service = create_payment_service(settings)
    assert service.gateway.provider == "cryptopay"
    assert service.wait_settings.poll_interval == 0.05
    assert service.webhook_parser.signature_header == "X-CryptoPay-Signature"
    await service.aclose()
