"""
CAPTCHA token verification.

The token shape is always checked. With ``RECAPTCHA_SECRET_KEY`` configured the
token is also verified server side against the provider's siteverify endpoint.
"""

from typing import Optional

import httpx

from airdrop_portal.core.http_client import create_client
from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.infra.config.settings import Settings, get_settings

logger = get_logger(__name__)


class CaptchaProviderError(Exception):
    """The CAPTCHA provider could not be reached or answered garbage"""


class CaptchaVerifier:
    def __init__(self, config: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_settings()
        self._client = http_client
        if not self.config.RECAPTCHA_SECRET_KEY:
            logger.warning("RECAPTCHA_SECRET_KEY not configured - CAPTCHA tokens are only length-checked")

    @property
    def server_side_enabled(self) -> bool:
        return bool(self.config.RECAPTCHA_SECRET_KEY)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_client("captcha")
        return self._client

    def check_shape(self, token: Optional[str]) -> bool:
        return bool(token) and len(token) >= self.config.CAPTCHA_MIN_TOKEN_LENGTH

    async def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> bool:
        """
        Verify a CAPTCHA token.

        Returns:
            True when the token is accepted

        Raises:
            CaptchaProviderError: server-side verification was required but failed to run
        """
        if not self.check_shape(token):
            logger.warning(
                "CAPTCHA token too short",
                extra={"token_length": len(token or "")}
            )
            return False

        if not self.server_side_enabled:
            logger.info(f"CAPTCHA token accepted without provider check (length: {len(token)})")
            return True

        payload = {"secret": self.config.RECAPTCHA_SECRET_KEY, "response": token}
        if remote_ip:
            payload["remoteip"] = remote_ip

        try:
            response = await self._get_client().post(self.config.RECAPTCHA_VERIFY_URL, data=payload)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"CAPTCHA provider request failed: {e}")
            raise CaptchaProviderError(str(e)) from e

        if not result.get("success"):
            logger.warning(
                "CAPTCHA rejected by provider",
                extra={"error_codes": result.get("error-codes", [])}
            )
            return False

        # v3 tokens carry a score, v2 tokens do not
        score = result.get("score")
        if score is not None and float(score) < self.config.RECAPTCHA_MIN_SCORE:
            logger.warning("CAPTCHA score below threshold", extra={"score": score})
            return False

        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
