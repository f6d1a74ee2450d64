"""Chain parameters for wallet bridges (network switch prompts, message template)."""

from fastapi import APIRouter

from airdrop_portal.api.controller.airdrop.dto.output_dto import NativeCurrencyDto, NetworkConfigResponseDto
from airdrop_portal.core.service.claim.models import CLAIM_MESSAGE_TEMPLATE
from airdrop_portal.infra.config.settings import get_settings

router = APIRouter(prefix="/api", tags=["network"])


@router.get("/network-config", response_model=NetworkConfigResponseDto)
async def network_config() -> NetworkConfigResponseDto:
    config = get_settings()
    return NetworkConfigResponseDto(
        chainId=hex(config.CHAIN_ID),
        chainIdDecimal=config.CHAIN_ID,
        chainName=config.CHAIN_NAME,
        nativeCurrency=NativeCurrencyDto(name=config.CURRENCY_SYMBOL, symbol=config.CURRENCY_SYMBOL),
        rpcUrls=[config.PUBLIC_RPC_URL] if config.PUBLIC_RPC_URL else [],
        blockExplorerUrls=[config.BLOCK_EXPLORER_URL] if config.BLOCK_EXPLORER_URL else [],
        claimMessageTemplate=CLAIM_MESSAGE_TEMPLATE
    )
