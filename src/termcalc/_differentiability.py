"""Classification of how a derivative of a subtree can be obtained."""

from enum import IntEnum


class DifferentiableType(IntEnum):
    """Differentiability rank, ordered from worst to best.

    The rank of a compound expression is the minimum of the ranks of its parts.
    """

    NONE = 0  # no derivative can be computed
    NUMERICAL = 1  # only a numeric (finite-difference) derivative
    ANALYTICAL = 2  # the analytic derivative is available
    INDEPENDENT = 3  # the subtree does not depend on the variable at all


def combine(*ranks: DifferentiableType) -> DifferentiableType:
    """Return the worst of the given ranks (INDEPENDENT when none are given).

    Examples:
        >>> combine(DifferentiableType.ANALYTICAL, DifferentiableType.NUMERICAL)
        <DifferentiableType.NUMERICAL: 1>
        >>> combine()
        <DifferentiableType.INDEPENDENT: 3>

    """
    return min(ranks, default=DifferentiableType.INDEPENDENT)
