"""
Python counterpart of the browser wallet bridge: holds a local account,
signs the claim message and drives the public airdrop endpoints.
"""

from typing import Any, Dict, Optional

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.claim.models import CLAIM_MESSAGE_TEMPLATE

logger = get_logger(__name__)


class WalletBridgeError(Exception):
    """Raised when the backend answers with an error envelope"""

    def __init__(self, status_code: int, code: Optional[str], message: str, body: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.body = body or {}
        super().__init__(f"{status_code} {code}: {message}")


class WalletBridge:
    def __init__(
        self,
        account: LocalAccount,
        base_url: str = "http://localhost:3001",
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.account = account
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=30.0)
        self._owns_client = http_client is None
        self._network: Optional[Dict[str, Any]] = None

    @classmethod
    def from_private_key(cls, private_key: str, **kwargs) -> "WalletBridge":
        return cls(Account.from_key(private_key), **kwargs)

    @property
    def address(self) -> str:
        """Connected address, lower-cased as the backend stores it"""
        return self.account.address.lower()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self._client.request(method, path, **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or body.get("success") is False:
            logger.warning(
                "Airdrop API call failed",
                extra={"path": path, "status_code": response.status_code, "error_code": body.get("code")}
            )
            raise WalletBridgeError(
                response.status_code,
                body.get("code"),
                body.get("message") or response.reason_phrase,
                body
            )
        return body

    async def get_network_config(self) -> Dict[str, Any]:
        """Chain parameters for a network switch; cached after the first call"""
        if self._network is None:
            self._network = await self._request("GET", "/api/network-config")
        return self._network

    async def check_eligibility(self) -> Dict[str, Any]:
        return await self._request("POST", "/api/check-eligibility", json={"walletAddress": self.address})

    async def sign_claim_message(self) -> str:
        template = CLAIM_MESSAGE_TEMPLATE
        if self._network is not None:
            template = self._network.get("claimMessageTemplate", template)
        message = template.format(address=self.address)
        signed = self.account.sign_message(encode_defunct(text=message))
        return "0x" + signed.signature.hex().removeprefix("0x")

    async def claim(self, captcha_token: str) -> Dict[str, Any]:
        """
        Sign and submit a claim.

        Args:
            captcha_token: token issued by the CAPTCHA widget

        Raises:
            WalletBridgeError: any non-success answer, e.g. ALREADY_CLAIMED
        """
        signature = await self.sign_claim_message()
        return await self._request(
            "POST",
            "/api/claim",
            json={"walletAddress": self.address, "signature": signature, "captchaToken": captcha_token}
        )

    async def get_claim_status(self) -> Dict[str, Any]:
        return await self._request("GET", f"/api/claim-status/{self.address}")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WalletBridge":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
