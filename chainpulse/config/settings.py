"""
Application settings snapshot.

Collects provider keys and endpoints from the environment into one typed object
so chain adapters, the email notifier and the cron endpoint do not each read
os.environ on their own. Tests construct Settings directly.
"""

from __future__ import annotations

from dataclasses import dataclass

from chainpulse.config import env


@dataclass(frozen=True)
class Settings:
    """Provider keys and endpoints. Empty string means "not configured"."""

    alchemy_api_key: str = ""
    helius_api_key: str = ""
    solana_rpc_url: str = env.SOLANA_PUBLIC_RPC_URL
    trongrid_api_key: str = ""
    cron_secret: str = ""
    resend_api_key: str = ""
    email_from: str = env.DEFAULT_EMAIL_FROM
    app_url: str = env.DEFAULT_APP_URL

    @property
    def alchemy_rpc_url(self) -> str | None:
        if not self.alchemy_api_key:
            return None
        return env.ALCHEMY_MAINNET_URL_TEMPLATE.format(key=self.alchemy_api_key)

    @property
    def alchemy_nft_url(self) -> str | None:
        if not self.alchemy_api_key:
            return None
        return env.ALCHEMY_NFT_URL_TEMPLATE.format(key=self.alchemy_api_key)


def get_settings() -> Settings:
    """Return the current application settings read from env (.env loaded first)."""
    return Settings(
        alchemy_api_key=env.get_alchemy_api_key(),
        helius_api_key=env.get_helius_api_key(),
        solana_rpc_url=env.get_solana_rpc_url(),
        trongrid_api_key=env.get_trongrid_api_key(),
        cron_secret=env.get_cron_secret(),
        resend_api_key=env.get_resend_api_key(),
        email_from=env.get_email_from(),
        app_url=env.get_app_url(),
    )
