"""
Chainpulse: multi-chain crypto portfolio backend.

Aggregates balances, prices, NFTs and naming-service domains for wallet
addresses on ten chains, tracks wallet lists and price alerts per user, and
snapshots portfolio value for history charts.
"""

__version__ = "0.1.0"
