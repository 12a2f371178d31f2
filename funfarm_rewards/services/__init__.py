"""
Services package - Business logic layer
"""
from funfarm_rewards.services.activity_service import activity_service
from funfarm_rewards.services.reward_engine import reward_engine
from funfarm_rewards.services.abuse_service import abuse_service
from funfarm_rewards.services.reconciliation_service import reconciliation_service
from funfarm_rewards.services.bonus_service import bonus_service

__all__ = [
    "activity_service",
    "reward_engine",
    "abuse_service",
    "reconciliation_service",
    "bonus_service"
]
