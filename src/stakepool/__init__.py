"""stakepool - pooled liquid-staking ledger with score-driven rebalancing."""

__version__ = "0.1.0"
