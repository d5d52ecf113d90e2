from enum import Enum, auto
from typing import Sequence, Union

import numpy as np
import torch

# Anything that can be turned into a 1-D float64 weight vector
PointLike = Union[torch.Tensor, np.ndarray, Sequence[float]]


class PriorType(Enum):
    """Regularization terms understood by LogPrior."""

    Null = "null"
    Quadratic = "quadratic"
    Huber = "huber"
    Quartic = "quartic"
    Cosh = "cosh"
    Adapt = "adapt"
    MultipleQuadratic = "multiple_quadratic"

    @classmethod
    def from_name(cls, name: str) -> "PriorType":
        """Parse a prior name case-insensitively (e.g. 'Huber', 'QUADRATIC')."""
        key = name.strip().lower()
        for prior_type in cls:
            if prior_type.value == key:
                return prior_type
        raise ValueError(f"Unknown LogPrior type: {name!r}")


class ObjectiveKind(Enum):
    """
    Closed set of objective variants.

    The factory dispatches on this tag; no new variant is registered at runtime.
    """

    Conditional = auto()
    SummedConditional = auto()
    Logistic = auto()
    Biased = auto()
    SemiSupervised = auto()
    ShiftParams = auto()
    GeneralizedExpectation = auto()


class MinimizerKind(Enum):
    QN = "qn"
    GD = "gd"
