# linkwatch/brain/rules.py
from linkwatch.brain.state import AggregateState


def degraded_rule(agg: AggregateState, degraded_threshold: int) -> bool:
    return agg.failures >= degraded_threshold


def offline_rule(agg: AggregateState, offline_threshold: int) -> bool:
    return agg.failures >= offline_threshold


def recovery_rule(agg: AggregateState, all_healthy: bool, recovery_threshold: int) -> bool:
    """
    Recovery needs `recovery_threshold` consecutive all-healthy ticks. Any
    failing tick in between zeroes agg.successes, so flapping never recovers.
    """
    return all_healthy and agg.successes >= recovery_threshold
