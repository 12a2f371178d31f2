"""
API routers package
"""
from funfarm_rewards.api import (
    system,
    rewards,
    abuse,
    reconciliation,
    exports
)

__all__ = [
    "system",
    "rewards",
    "abuse",
    "reconciliation",
    "exports"
]
