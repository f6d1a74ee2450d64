from urllib.parse import parse_qs

import httpx
import pytest

from airdrop_portal.core.http_client import HTTPClientConfig
from airdrop_portal.core.service.captcha.captcha_verifier import CaptchaProviderError, CaptchaVerifier
from airdrop_portal.infra.config.settings import get_settings

TOKEN = "t" * 40


def verifier_with(handler, **overrides) -> CaptchaVerifier:
    config = get_settings().model_copy(update={"RECAPTCHA_SECRET_KEY": "server-secret", **overrides})
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CaptchaVerifier(config=config, http_client=client)


@pytest.mark.parametrize("token", [None, "", "short"])
async def test_short_tokens_are_rejected(captcha_verifier, token):
    assert await captcha_verifier.verify(token) is False


async def test_token_accepted_without_secret(captcha_verifier):
    assert captcha_verifier.server_side_enabled is False
    assert await captcha_verifier.verify(TOKEN) is True


async def test_provider_accepts():
    seen = {}

    def handler(request):
        seen.update(parse_qs(request.content.decode()))
        return httpx.Response(200, json={"success": True, "score": 0.9})

    verifier = verifier_with(handler)
    try:
        assert await verifier.verify(TOKEN, remote_ip="8.8.8.8") is True
    finally:
        await verifier.close()

    assert seen == {"secret": ["server-secret"], "response": [TOKEN], "remoteip": ["8.8.8.8"]}


async def test_provider_accepts_v2_token_without_score():
    verifier = verifier_with(lambda request: httpx.Response(200, json={"success": True}))
    try:
        assert await verifier.verify(TOKEN) is True
    finally:
        await verifier.close()


async def test_provider_rejects():
    verifier = verifier_with(
        lambda request: httpx.Response(200, json={"success": False, "error-codes": ["invalid-input-response"]})
    )
    try:
        assert await verifier.verify(TOKEN) is False
    finally:
        await verifier.close()


async def test_low_score_is_rejected():
    verifier = verifier_with(
        lambda request: httpx.Response(200, json={"success": True, "score": 0.3}),
        RECAPTCHA_MIN_SCORE=0.5
    )
    try:
        assert await verifier.verify(TOKEN) is False
    finally:
        await verifier.close()


@pytest.mark.parametrize("response", [httpx.Response(502), httpx.Response(200, text="<html>")])
async def test_provider_failure_raises(response):
    verifier = verifier_with(lambda request: response)
    try:
        with pytest.raises(CaptchaProviderError):
            await verifier.verify(TOKEN)
    finally:
        await verifier.close()


async def test_provider_unreachable_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    verifier = verifier_with(handler)
    try:
        with pytest.raises(CaptchaProviderError):
            await verifier.verify(TOKEN)
    finally:
        await verifier.close()


def test_provider_timeout_comes_from_settings(monkeypatch):
    monkeypatch.setattr(get_settings(), "CAPTCHA_TIMEOUT_SECONDS", 3.5)

    assert HTTPClientConfig.get_timeout("captcha") == 3.5
