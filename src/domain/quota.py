"""Quota arithmetic over a subscription's usage counter"""

from src.domain.subscription import Subscription


def remaining(subscription: Subscription) -> int:
    return max(0, subscription.execution_quota - subscription.executions_used)


def has_exceeded_quota(subscription: Subscription) -> bool:
    # Reaching the quota already blocks admission of the next execution
    return subscription.executions_used >= subscription.execution_quota


def overage_executions(subscription: Subscription) -> int:
    return max(0, subscription.executions_used - subscription.execution_quota)
