"""
Environment variable loading for Chainpulse.

- ALCHEMY_API_KEY: Alchemy key for Ethereum balances, tokens, NFTs and ENS (optional)
- HELIUS_API_KEY: Helius key for Solana DAS, NFTs and enrichment (optional)
- SOLANA_RPC_URL: explicit Solana RPC endpoint (overrides Helius/public default)
- TRONGRID_API_KEY: TronGrid key, sent as TRON-PRO-API-KEY (optional)
- CRON_SECRET: shared secret for the snapshot endpoint (required for that endpoint)
- RESEND_API_KEY / ALERT_EMAIL_FROM: alert email delivery (optional)
- APP_URL: link target in alert emails
- Loads .env from project root (or CHAINPULSE_ENV_FILE) at import, before the
  tunables below are read, so timeouts and cache sizes can be set there too.
"""

from __future__ import annotations

import os
from pathlib import Path

_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
# CHAINPULSE_ENV_FILE points at an alternate dotenv file (deployments, tests)
_ENV_PATH = Path(os.getenv("CHAINPULSE_ENV_FILE") or _ROOT / ".env")

SOLANA_PUBLIC_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
ALCHEMY_MAINNET_URL_TEMPLATE = "https://eth-mainnet.g.alchemy.com/v2/{key}"
ALCHEMY_NFT_URL_TEMPLATE = "https://eth-mainnet.g.alchemy.com/nft/v3/{key}"
DEFAULT_EMAIL_FROM = "Chainpulse <onboarding@resend.dev>"
DEFAULT_APP_URL = "http://localhost:3000"


def load_chainpulse_env() -> None:
    """Load the dotenv file (project root or CHAINPULSE_ENV_FILE). Real env vars win."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def _float_env(name: str, default: str) -> float:
    return float(os.getenv(name, default).strip() or default)


def _int_env(name: str, default: str) -> int:
    return int(os.getenv(name, default).strip() or default)


load_chainpulse_env()

# Tunables (seconds unless noted)
HTTP_TIMEOUT_SEC = _float_env("HTTP_TIMEOUT_SEC", "15")
PRICE_CACHE_TTL_SEC = _float_env("PRICE_CACHE_TTL_SEC", "30")
ALERT_PRICE_CACHE_TTL_SEC = _float_env("ALERT_PRICE_CACHE_TTL_SEC", "60")
PRICE_CACHE_MAX_ENTRIES = _int_env("PRICE_CACHE_MAX_ENTRIES", "2048")
WALLET_FETCH_TIMEOUT_SEC = _float_env("WALLET_FETCH_TIMEOUT_SEC", "30")
AUTO_REFRESH_INTERVAL_SEC = _float_env("AUTO_REFRESH_INTERVAL_SEC", "30")
SNAPSHOT_CRON_MINUTE = _int_env("SNAPSHOT_CRON_MINUTE", "0")


def _get(name: str) -> str:
    load_chainpulse_env()
    return (os.getenv(name) or "").strip()


def get_alchemy_api_key() -> str:
    return _get("ALCHEMY_API_KEY")


def get_helius_api_key() -> str:
    return _get("HELIUS_API_KEY")


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY > public mainnet endpoint.
    """
    url = _get("SOLANA_RPC_URL")
    if url:
        return url
    key = get_helius_api_key()
    if key:
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    return SOLANA_PUBLIC_RPC_URL


def get_trongrid_api_key() -> str:
    return _get("TRONGRID_API_KEY")


def get_cron_secret() -> str:
    return _get("CRON_SECRET")


def get_resend_api_key() -> str:
    return _get("RESEND_API_KEY")


def get_email_from() -> str:
    return _get("ALERT_EMAIL_FROM") or DEFAULT_EMAIL_FROM


def get_app_url() -> str:
    return _get("APP_URL") or DEFAULT_APP_URL
