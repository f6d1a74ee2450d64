import asyncio

import httpx
import pytest
from starlette.requests import Request

from airdrop_portal.api.utils.metrics import ClaimMetrics
from airdrop_portal.core.service.geolocation.ip_geolocation import (
    GeolocationService,
    get_client_ip,
    is_private_ip,
    normalize_ip,
)


def make_request(headers=None, client=("203.0.113.10", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(name.lower().encode(), value.encode()) for name, value in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def service_with(handler, metrics=None) -> GeolocationService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeolocationService(http_client=client, metrics=metrics)


@pytest.mark.parametrize("ip", [
    "10.0.0.1",
    "172.16.5.4",
    "192.168.1.1",
    "127.0.0.1",
    "::1",
    "fc00::1",
    "fd12:3456::1",
    "fe80::1",
    "169.254.1.1",
    "::ffff:192.168.1.1",
    "::ffff:127.0.0.1",
    "",
    None,
    "Unknown",
    "localhost",
    "not-an-ip",
])
def test_private_addresses(ip):
    assert is_private_ip(ip) is True


@pytest.mark.parametrize("ip", ["8.8.8.8", "1.1.1.1", "2001:4860:4860::8888", "::ffff:8.8.8.8"])
def test_public_addresses(ip):
    assert is_private_ip(ip) is False


def test_normalize_ip():
    assert normalize_ip("::ffff:8.8.8.8") == "8.8.8.8"
    assert normalize_ip("[2001:db8::1]") == "2001:db8::1"
    assert normalize_ip(" 1.1.1.1 ") == "1.1.1.1"


def test_client_ip_prefers_first_public_forwarded_hop():
    request = make_request({"X-Forwarded-For": "10.0.0.1, 192.168.0.5, 8.8.8.8, 1.1.1.1"})

    assert get_client_ip(request) == "8.8.8.8"


def test_client_ip_falls_back_to_first_forwarded_hop():
    request = make_request({"X-Forwarded-For": "10.0.0.1, 192.168.0.5"})

    assert get_client_ip(request) == "10.0.0.1"


@pytest.mark.parametrize("header", ["X-Real-IP", "CF-Connecting-IP", "X-Client-IP"])
def test_client_ip_from_proxy_headers(header):
    assert get_client_ip(make_request({header: "9.9.9.9"})) == "9.9.9.9"


def test_client_ip_header_order():
    request = make_request({"X-Client-IP": "3.3.3.3", "X-Real-IP": "1.1.1.1", "CF-Connecting-IP": "2.2.2.2"})

    assert get_client_ip(request) == "1.1.1.1"


def test_client_ip_from_transport_peer():
    assert get_client_ip(make_request(client=("::ffff:8.8.4.4", 1234))) == "8.8.4.4"


def test_client_ip_unknown():
    assert get_client_ip(make_request(client=None)) == "Unknown"


async def test_private_ip_skips_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    service = service_with(handler)
    try:
        assert await service.get_country("192.168.1.20") == "Local/Private"
    finally:
        await service.close()
    assert calls == []


async def test_primary_provider():
    metrics = ClaimMetrics()

    def handler(request):
        assert request.url.host == "ip-api.com"
        assert request.url.path == "/json/8.8.8.8"
        return httpx.Response(200, json={"status": "success", "country": "United States"})

    service = service_with(handler, metrics)
    try:
        assert await service.get_country("8.8.8.8") == "United States"
    finally:
        await service.close()
    assert metrics.get_metrics_summary()["geolocation_sources"] == {"ip-api": 1}


@pytest.mark.parametrize("primary", [
    httpx.Response(200, json={"status": "fail", "message": "reserved range"}),
    httpx.Response(503),
    httpx.Response(200, text="not json"),
])
async def test_fallback_provider(primary):
    def handler(request):
        if request.url.host == "ip-api.com":
            return primary
        assert request.url.host == "ipapi.co"
        return httpx.Response(200, text="Japan\n")

    service = service_with(handler)
    try:
        assert await service.get_country("1.1.1.1") == "Japan"
    finally:
        await service.close()


async def test_both_providers_failing():
    def handler(request):
        if request.url.host == "ip-api.com":
            raise httpx.ConnectError("unreachable")
        return httpx.Response(200, text="Undefined")

    service = service_with(handler)
    try:
        assert await service.get_country("1.1.1.1") == "Unknown"
    finally:
        await service.close()


async def test_resolve_country_times_out():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json={"status": "success", "country": "Late"})

    metrics = ClaimMetrics()
    service = service_with(handler, metrics)
    try:
        assert await service.resolve_country("8.8.8.8", timeout=0.05) == "Unknown"
    finally:
        await service.close()
    assert metrics.get_metrics_summary()["geolocation_sources"] == {"timeout": 1}
