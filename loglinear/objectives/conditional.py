from typing import Optional

import torch

from ..constants import DTYPE
from ..data import EncodedDataset
from ..index import FeatureClassIndex
from ..numerics import accumulate_feature_gradient, class_activations, normalize_rows
from ..priors import LogPrior
from .base import CachingDiffFunction, as_point


class LogConditionalObjective(CachingDiffFunction):
    """
    Negative conditional log-likelihood of a multinomial log-linear model.

    Per example d with gold class y:

        sums[c]  = sum_f x[f, c] * value(f)
        loss_d   = -(sums[y] - logsumexp(sums)) * weight_d
        grad     = sum_d weight_d * value(f) * (probs_d[c] - [c == y])

    i.e. expected minus observed feature counts. The observed part depends
    only on the data; it is computed once and copied into the gradient
    buffer on every calculation.

    With use_summed=True the objective is the summed conditional likelihood
    -sum_d weight_d * p(y_d | d) instead (Klein and Manning 2002), which is
    only defined here for presence-only features.

    Weights use the feature-major FeatureClassIndex layout.
    """

    def __init__(
        self,
        dataset: EncodedDataset,
        prior: Optional[LogPrior] = None,
        use_summed: bool = False,
    ):
        super().__init__()
        if use_summed and dataset.is_real_valued:
            raise NotImplementedError(
                "Summed conditional likelihood is not implemented for real-valued features"
            )
        self.dataset = dataset
        self.prior = prior if prior is not None else LogPrior.quadratic()
        self.use_summed = use_summed
        self.index = FeatureClassIndex(dataset.num_features, dataset.num_classes)
        self._derivative_numerator: Optional[torch.Tensor] = None

    @property
    def num_features(self) -> int:
        return self.dataset.num_features

    @property
    def num_classes(self) -> int:
        return self.dataset.num_classes

    def domain_dimension(self) -> int:
        return self.index.dimension

    def to_2d(self, x) -> torch.Tensor:
        """Weights as a (num_features, num_classes) matrix."""
        return self.index.to_2d(as_point(x)).clone()

    def _gold_one_hot(self) -> torch.Tensor:
        one_hot = torch.zeros(self.dataset.num_examples, self.num_classes, dtype=DTYPE)
        one_hot[torch.arange(self.dataset.num_examples), self.dataset.label_tensor] = 1.0
        return one_hot

    def _observed_counts(self) -> torch.Tensor:
        """Negated (weighted) observed feature counts, shape (num_features, num_classes)."""
        if self._derivative_numerator is None:
            coeff = -self._gold_one_hot()
            if self.dataset.weight_tensor is not None:
                coeff = coeff * self.dataset.weight_tensor.unsqueeze(1)
            numerator = torch.zeros(self.num_features, self.num_classes, dtype=DTYPE)
            accumulate_feature_gradient(numerator, coeff, self.dataset.coordinates)
            self._derivative_numerator = numerator
        return self._derivative_numerator

    def _calculate(self, x: torch.Tensor):
        if self.use_summed:
            self._calculate_summed(x)
        else:
            self._calculate_conditional(x)
        self._add_prior(self.prior, x)

    def _calculate_conditional(self, x: torch.Tensor):
        coords = self.dataset.coordinates
        weights = self.dataset.weight_tensor
        labels = self.dataset.label_tensor

        sums = class_activations(self.index.to_2d(x), coords)
        totals, probs = normalize_rows(sums)

        log_likelihood = sums.gather(1, labels.unsqueeze(1)).squeeze(1) - totals
        if weights is not None:
            log_likelihood = log_likelihood * weights
            probs = probs * weights.unsqueeze(1)
        self._value = -float(log_likelihood.sum())

        grad2d = self.index.to_2d(self._derivative)
        grad2d.copy_(self._observed_counts())
        accumulate_feature_gradient(grad2d, probs, coords)

    def _calculate_summed(self, x: torch.Tensor):
        coords = self.dataset.coordinates
        weights = self.dataset.weight_tensor
        labels = self.dataset.label_tensor

        sums = class_activations(self.index.to_2d(x), coords)
        _, probs = normalize_rows(sums)
        gold_probs = probs.gather(1, labels.unsqueeze(1))

        # d(-p_y)/d sums[c] = p_y * (p_c - [c == y])
        coeff = gold_probs * (probs - self._gold_one_hot())
        gold_probs = gold_probs.squeeze(1)
        if weights is not None:
            gold_probs = gold_probs * weights
            coeff = coeff * weights.unsqueeze(1)
        self._value = -float(gold_probs.sum())

        accumulate_feature_gradient(self.index.to_2d(self._derivative), coeff, coords)
