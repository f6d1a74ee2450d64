"""
Client IP extraction and best-effort country lookup.

Private and loopback addresses never leave the process. Public addresses go to
ip-api.com first and ipapi.co second; when both fail the country is "Unknown".
"""

import asyncio
import ipaddress
from typing import Optional

import httpx
from fastapi import Request

from airdrop_portal.core.http_client import create_client
from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()

PRIVATE_COUNTRY = "Local/Private"
UNKNOWN_COUNTRY = "Unknown"
UNKNOWN_IP = "Unknown"

SENTINEL_COUNTRIES = (PRIVATE_COUNTRY, UNKNOWN_COUNTRY)


def normalize_ip(ip: Optional[str]) -> Optional[str]:
    """Strip IPv6 brackets and the IPv4-mapped prefix (::ffff:1.2.3.4 -> 1.2.3.4)"""
    if not ip:
        return ip
    ip = ip.strip()
    if ip.startswith("[") and ip.endswith("]"):
        ip = ip[1:-1]
    if ip.lower().startswith("::ffff:"):
        ip = ip[7:]
    return ip


def is_private_ip(ip: Optional[str]) -> bool:
    """
    True for loopback, RFC1918, IPv6 unique-local and link-local addresses.
    Missing or unparseable values are treated as private so they are never looked up.
    """
    ip = normalize_ip(ip)
    if not ip or ip in (UNKNOWN_IP, "localhost"):
        return True

    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return True

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped

    return address.is_loopback or address.is_private or address.is_link_local


def get_client_ip(request: Request) -> str:
    """
    Best guess at the originating client address.

    Order: first public hop in X-Forwarded-For (else its first entry),
    X-Real-IP, CF-Connecting-IP, X-Client-IP, then the transport peer.
    """
    ip: Optional[str] = None

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        ip = next((hop for hop in hops if not is_private_ip(hop)), None)
        if not ip and hops:
            ip = hops[0]

    for header in ("x-real-ip", "cf-connecting-ip", "x-client-ip"):
        if ip:
            break
        value = request.headers.get(header)
        if value and value.strip():
            ip = value.strip()

    if not ip and request.client:
        ip = request.client.host

    return normalize_ip(ip) or UNKNOWN_IP


class GeolocationService:
    """Resolves a country name from an IP address using two public providers"""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, metrics=None):
        self._client = http_client or create_client("geolocation")
        self._metrics = metrics

    def _record(self, source: str) -> None:
        if self._metrics is not None:
            self._metrics.record_geolocation(source)

    async def _lookup_ip_api(self, ip: str) -> Optional[str]:
        response = await self._client.get(settings.IP_API_URL.format(ip=ip))
        response.raise_for_status()
        data = response.json()
        if data.get("status") == "success" and data.get("country"):
            return data["country"]
        return None

    async def _lookup_ipapi_co(self, ip: str) -> Optional[str]:
        response = await self._client.get(
            settings.IPAPI_CO_URL.format(ip=ip),
            headers={"Accept": "text/plain", "User-Agent": "Mozilla/5.0"}
        )
        response.raise_for_status()
        country = response.text.strip()
        if country and "error" not in country.lower() and country.lower() != "undefined":
            return country
        return None

    async def get_country(self, ip: Optional[str]) -> str:
        """
        Country name for ``ip``.

        Returns:
            The provider's country name, "Local/Private" for private addresses
            or "Unknown" when neither provider answered.
        """
        if is_private_ip(ip):
            self._record("private")
            return PRIVATE_COUNTRY

        ip = normalize_ip(ip)

        try:
            country = await self._lookup_ip_api(ip)
            if country:
                logger.info(f"Country lookup successful for IP {ip}: {country}")
                self._record("ip-api")
                return country
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"ip-api.com lookup failed for {ip}, trying fallback: {e}")

        try:
            country = await self._lookup_ipapi_co(ip)
            if country:
                logger.info(f"Country lookup successful (fallback) for IP {ip}: {country}")
                self._record("ipapi.co")
                return country
        except httpx.HTTPError as e:
            logger.warning(f"ipapi.co lookup failed for {ip}: {e}")

        logger.warning(f"Could not determine country for IP: {ip}")
        self._record("unknown")
        return UNKNOWN_COUNTRY

    async def resolve_country(self, ip: Optional[str], timeout: Optional[float] = None) -> str:
        """``get_country`` bounded by a soft timeout; never raises"""
        timeout = settings.GEOLOCATION_TIMEOUT_SECONDS if timeout is None else timeout
        try:
            return await asyncio.wait_for(self.get_country(ip), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Country lookup timed out for IP {ip}")
            self._record("timeout")
            return UNKNOWN_COUNTRY
        except Exception as e:
            logger.warning(f"Error getting country for IP {ip}: {e}")
            return UNKNOWN_COUNTRY

    async def close(self) -> None:
        await self._client.aclose()
