"""
Application-level exceptions.

Invalid input maps to HTTP 400, missing identity to 401, missing required
configuration to 503. UpstreamError never leaves a chain adapter.
"""

from __future__ import annotations


class ChainpulseError(Exception):
    """Base class for Chainpulse errors."""


class InvalidAddressError(ChainpulseError, ValueError):
    def __init__(self, chain: str, address: str) -> None:
        super().__init__(f"Invalid {chain} address")
        self.chain = chain
        self.address = address


class UnsupportedChainError(ChainpulseError, ValueError):
    def __init__(self, chain: str) -> None:
        super().__init__(f"Unsupported chain: {chain}")
        self.chain = chain


class UpstreamError(ChainpulseError):
    """A provider answered, but not with a usable payload (RPC error object, success=false, ...)."""


class ConfigurationError(ChainpulseError):
    """A required secret or key is not configured. Callers fail closed."""


class AuthenticationError(ChainpulseError):
    """No authenticated caller identity."""
