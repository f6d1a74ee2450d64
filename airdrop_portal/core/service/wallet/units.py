from decimal import Decimal
from typing import Union

from web3 import Web3


def format_ether(value: Union[int, str]) -> str:
    """
    Render a base-unit (wei) amount in ether units.

    Always keeps at least one fractional digit: 10**21 -> "1000.0",
    5 * 10**17 -> "0.5", 0 -> "0.0".
    """
    ether = Decimal(Web3.from_wei(int(value), "ether"))
    text = format(ether, "f")
    if "." not in text:
        return f"{text}.0"
    whole, fraction = text.split(".")
    return f"{whole}.{fraction.rstrip('0') or '0'}"


def to_base_units(tokens: Union[int, str, Decimal], decimals: int = 18) -> int:
    """Whole-token amount to base units (18 decimals by default)"""
    return int(Decimal(tokens) * (Decimal(10) ** decimals))
