"""
Portfolio aggregation: per-wallet aggregator, cross-wallet merger and tracker,
and snapshot history. Import submodules directly (chains depend on models).
"""
