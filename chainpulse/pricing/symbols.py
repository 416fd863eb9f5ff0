"""Static symbol tables: CoinGecko ids, display names, icons, stablecoins."""

from __future__ import annotations

# Symbol -> CoinGecko id. Keys are upper-case.
COINGECKO_IDS: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "HYPE": "hyperliquid",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "LTC": "litecoin",
    "ADA": "cardano",
    "TRX": "tron",
    "ZEC": "zcash",
    "USDC": "usd-coin",
    "USDT": "tether",
    "NEKO": "neko-on-hyperliquid",
    "JUP": "jupiter-exchange-solana",
    "BONK": "bonk",
    "WIF": "dogwifcoin",
    "PYTH": "pyth-network",
    "RENDER": "render-token",
    "JITOSOL": "jito-staked-sol",
    "MSOL": "msol",
    "BSOL": "blazestake-staked-sol",
}

TOKEN_NAMES: dict[str, str] = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "SOL": "Solana",
    "HYPE": "Hyperliquid",
    "XRP": "XRP",
    "DOGE": "Dogecoin",
    "LTC": "Litecoin",
    "ADA": "Cardano",
    "TRX": "Tron",
    "ZEC": "Zcash",
    "USDC": "USD Coin",
    "USDT": "Tether",
    "NEKO": "Neko",
    "JUP": "Jupiter",
    "BONK": "Bonk",
    "WIF": "dogwifhat",
    "PYTH": "Pyth Network",
    "RENDER": "Render",
    "JITOSOL": "Jito Staked SOL",
    "MSOL": "Marinade Staked SOL",
    "BSOL": "BlazeStake Staked SOL",
}

_CG = "https://assets.coingecko.com/coins/images"
ICONS: dict[str, str] = {
    "BTC": f"{_CG}/1/standard/bitcoin.png",
    "ETH": f"{_CG}/279/standard/ethereum.png",
    "SOL": f"{_CG}/4128/standard/solana.png",
    "XRP": f"{_CG}/44/standard/xrp-symbol-white-128.png",
    "ADA": f"{_CG}/975/standard/cardano.png",
    "DOGE": f"{_CG}/5/standard/dogecoin.png",
    "LTC": f"{_CG}/2/standard/litecoin.png",
    "TRX": f"{_CG}/1094/standard/tron-logo.png",
    "ZEC": f"{_CG}/486/standard/circle-zcash-color.png",
    "HYPE": f"{_CG}/50882/standard/hyperliquid.jpg",
    "USDC": f"{_CG}/6319/standard/usdc.png",
    "USDT": f"{_CG}/325/standard/Tether.png",
}

# Forced to 1.0 when no upstream price is available
STABLECOIN_FALLBACK = frozenset({"USDC", "USDT"})

# Kept down to $0.01 by the dust filter
DUST_EXEMPT_STABLECOINS = frozenset({"USDC", "USDT", "DAI", "USDD", "TUSD"})


def token_name(symbol: str, default: str | None = None) -> str:
    return TOKEN_NAMES.get(symbol.upper(), default or symbol)


def icon_for(symbol: str) -> str | None:
    return ICONS.get(symbol.upper())
