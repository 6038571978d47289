import math

from leaderboard.policy import Order


def percentile_for(total_members, descending_position, order=Order.HIGH_TO_LOW):
    """Share of the field (0-100) a member outranks.

    descending_position is the member's 0-based position with the highest
    score first, whatever the leaderboard's own order.
    """
    percentile = int(math.ceil(
            (total_members - descending_position - 1) / float(total_members) * 100))
    if order.ascending:
        return 100 - percentile
    return percentile


def percentile_index(total_members, percentile, order=Order.HIGH_TO_LOW):
    if total_members < 1 or not 0 <= percentile <= 100:
        return None
    if order.ascending:
        percentile = 100 - percentile
    return (total_members - 1) * (percentile / 100.0)


def interpolate(index, low_score, high_score):
    fraction = index - math.floor(index)
    if fraction == 0:
        return low_score
    return low_score + fraction * (high_score - low_score)
