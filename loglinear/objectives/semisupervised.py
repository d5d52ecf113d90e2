from typing import Optional

import torch

from ..constants import DEFAULT_CONVEX_COMBO
from ..priors import LogPrior
from ..types import PriorType
from .base import CachingDiffFunction


def _is_regularized(objective: CachingDiffFunction) -> bool:
    priors = (getattr(objective, "prior", None), getattr(objective, "shift_prior", None))
    return any(p is not None and p.prior_type != PriorType.Null for p in priors)


class SemiSupervisedObjective(CachingDiffFunction):
    """
    Convex combination of two objectives over the same weight space.

        value = a * f1(x) + (1 - a) * f2(x) + prior(x)

    f1 is usually the labeled-data objective and f2 a weak-signal one
    (biased or generalized expectation). The prior is added here once, so
    when it is given an inner objective carrying a non-null prior is rejected.
    """

    def __init__(
        self,
        objective: CachingDiffFunction,
        biased_objective: CachingDiffFunction,
        prior: Optional[LogPrior] = None,
        convex_combo_coeff: float = DEFAULT_CONVEX_COMBO,
    ):
        super().__init__()
        if not 0.0 <= convex_combo_coeff <= 1.0:
            raise ValueError(
                f"convex_combo_coeff must lie in [0, 1], got {convex_combo_coeff}"
            )
        if objective.domain_dimension() != biased_objective.domain_dimension():
            raise ValueError(
                f"Inner objectives disagree on dimension: "
                f"{objective.domain_dimension()} != {biased_objective.domain_dimension()}"
            )
        if prior is not None and prior.prior_type != PriorType.Null:
            for name, inner in (("objective", objective), ("biased_objective", biased_objective)):
                if _is_regularized(inner):
                    raise ValueError(
                        f"{name} already carries a prior; inner objectives must use "
                        "LogPrior.null() when the combination is regularized"
                    )
        self.objective = objective
        self.biased_objective = biased_objective
        self.prior = prior
        self.convex_combo_coeff = convex_combo_coeff

    def domain_dimension(self) -> int:
        return self.objective.domain_dimension()

    def _calculate(self, x: torch.Tensor):
        a = self.convex_combo_coeff
        value1, grad1 = self.objective.value_and_gradient(x)
        value2, grad2 = self.biased_objective.value_and_gradient(x)

        self._value = a * value1 + (1.0 - a) * value2
        self._derivative.add_(grad1, alpha=a).add_(grad2, alpha=1.0 - a)
        self._add_prior(self.prior, x)
