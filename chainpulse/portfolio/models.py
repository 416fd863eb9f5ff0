"""
Portfolio view objects: Asset, NFT, Domain, and the per-wallet Holdings bundle.

These are ephemeral: recomputed on every fetch and never persisted. to_dict()
renders the JSON shape returned by the HTTP API (camelCase keys).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

ACQUISITION_MINTED = "minted"
ACQUISITION_PURCHASED = "purchased"
ACQUISITION_RECEIVED = "received"
ACQUISITION_UNKNOWN = "unknown"


@dataclass
class Asset:
    """
    One holding of one token on one chain. balance is in human units.

    value is derived: only attach_price() and the cross-wallet merge write it.
    """

    symbol: str
    name: str
    chain: str
    balance: float
    price: float = 0.0
    change24h: float = 0.0
    value: float = 0.0
    icon: str | None = None
    is_staked: bool = False
    staking_protocol: str | None = None
    contract: str | None = None

    def attach_price(self, price: float, change24h: float | None = None) -> None:
        self.price = price
        if change24h is not None:
            self.change24h = change24h
        self.value = self.balance * price

    @property
    def merge_key(self) -> tuple[str, str, bool]:
        return (self.symbol, self.chain, bool(self.is_staked))

    def copy(self) -> Asset:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "symbol": self.symbol,
            "name": self.name,
            "chain": self.chain,
            "balance": self.balance,
            "price": self.price,
            "value": self.value,
            "change24h": self.change24h,
            "isStaked": self.is_staked,
        }
        if self.icon:
            out["icon"] = self.icon
        if self.staking_protocol:
            out["stakingProtocol"] = self.staking_protocol
        if self.contract:
            out["contract"] = self.contract
        return out


@dataclass
class NFT:
    mint: str
    name: str
    chain: str
    collection: str | None = None
    image_url: str | None = None
    floor_price: float | None = None
    purchase_price: float | None = None
    purchase_date: str | None = None
    acquisition_type: str = ACQUISITION_UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "mint": self.mint,
            "name": self.name,
            "chain": self.chain,
            "collection": self.collection,
            "imageUrl": self.image_url,
            "floorPrice": self.floor_price,
            "purchasePrice": self.purchase_price,
            "purchaseDate": self.purchase_date,
            "acquisitionType": self.acquisition_type,
        }


@dataclass
class Domain:
    """Naming-service record (.sol, .eth) owned by the address."""

    name: str
    chain: str
    mint: str | None = None
    purchase_price: float | None = None
    purchase_date: str | None = None
    expiry_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "chain": self.chain,
            "mint": self.mint,
            "purchasePrice": self.purchase_price,
            "purchaseDate": self.purchase_date,
            "expiryDate": self.expiry_date,
        }


@dataclass
class Holdings:
    """Normalized chain adapter output for one address."""

    assets: list[Asset] = field(default_factory=list)
    nfts: list[NFT] = field(default_factory=list)
    domains: list[Domain] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class WalletPortfolio:
    """One address's priced, sorted portfolio as returned by the aggregator."""

    address: str
    chain: str
    assets: list[Asset] = field(default_factory=list)
    nfts: list[NFT] = field(default_factory=list)
    domains: list[Domain] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0  # Unix milliseconds

    @property
    def total_value(self) -> float:
        return sum(a.value for a in self.assets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "chain": self.chain,
            "assets": [a.to_dict() for a in self.assets],
            "nfts": [n.to_dict() for n in self.nfts],
            "domains": [d.to_dict() for d in self.domains],
            "totalValue": self.total_value,
            "nftCount": len(self.nfts),
            "details": self.details,
            "timestamp": self.timestamp,
        }
