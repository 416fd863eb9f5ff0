"""
Chain adapters, one per supported chain, behind a lookup table.

Adding a chain means adding an adapter module and one ADAPTERS entry.
"""

from __future__ import annotations

from chainpulse.chains.base import AdapterContext, Chain, ChainAdapter
from chainpulse.chains.bitcoin import BitcoinAdapter
from chainpulse.chains.cardano import CardanoAdapter
from chainpulse.chains.dogecoin import DogecoinAdapter
from chainpulse.chains.ethereum import EthereumAdapter
from chainpulse.chains.hyperliquid import HyperliquidAdapter
from chainpulse.chains.litecoin import LitecoinAdapter
from chainpulse.chains.solana import SolanaAdapter
from chainpulse.chains.tron import TronAdapter
from chainpulse.chains.xrp import XrpAdapter
from chainpulse.chains.zcash import ZcashAdapter
from chainpulse.core.exceptions import UnsupportedChainError

ADAPTERS: dict[Chain, ChainAdapter] = {
    Chain.BITCOIN: BitcoinAdapter(),
    Chain.ETHEREUM: EthereumAdapter(),
    Chain.SOLANA: SolanaAdapter(),
    Chain.HYPERLIQUID: HyperliquidAdapter(),
    Chain.XRP: XrpAdapter(),
    Chain.DOGECOIN: DogecoinAdapter(),
    Chain.ZCASH: ZcashAdapter(),
    Chain.CARDANO: CardanoAdapter(),
    Chain.LITECOIN: LitecoinAdapter(),
    Chain.TRON: TronAdapter(),
}

# Chains whose addresses are case-insensitive hex
CASE_INSENSITIVE_CHAINS = frozenset({Chain.ETHEREUM, Chain.HYPERLIQUID})


def parse_chain(value: str) -> Chain:
    try:
        return Chain((value or "").strip().lower())
    except ValueError:
        raise UnsupportedChainError(value) from None


def get_adapter(chain: Chain | str) -> ChainAdapter:
    if not isinstance(chain, Chain):
        chain = parse_chain(chain)
    return ADAPTERS[chain]


def normalize_address(address: str, chain: Chain | str) -> str:
    """Trim, and lower-case only where the chain's addresses are case-insensitive."""
    address = (address or "").strip()
    if not isinstance(chain, Chain):
        chain = parse_chain(chain)
    return address.lower() if chain in CASE_INSENSITIVE_CHAINS else address


__all__ = [
    "ADAPTERS",
    "AdapterContext",
    "Chain",
    "ChainAdapter",
    "get_adapter",
    "normalize_address",
    "parse_chain",
]
