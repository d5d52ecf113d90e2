from typing import Optional

import torch
import torch.nn.functional as F

from ..constants import DTYPE
from ..data import EncodedDataset
from ..priors import LogPrior
from .base import CachingDiffFunction


class LogisticObjective(CachingDiffFunction):
    """
    Binary logistic regression with one weight per feature.

    Class 0 is implicit as the negation of class 1, so the domain is
    num_features rather than 2 * num_features. With s = sum_f x[f] * value(f):

        label 0:  loss = log(1 + exp(s)),   dloss/ds =  sigmoid(s)
        label 1:  loss = log(1 + exp(-s)),  dloss/ds = -sigmoid(-s)

    Numerical stability:
    - softplus(z) = log(1 + exp(z)) never overflows
    - sigmoid is evaluated directly rather than through exp ratios

    A per-example weight scales loss and derivative together.
    """

    def __init__(self, dataset: EncodedDataset, prior: Optional[LogPrior] = None):
        super().__init__()
        if dataset.num_classes != 2:
            raise ValueError(
                f"LogisticObjective is only for binary classification, got {dataset.num_classes} classes"
            )
        self.dataset = dataset
        self.prior = prior if prior is not None else LogPrior.quadratic()
        # +1 for label 0, -1 for label 1: loss = softplus(sign * s)
        self._signs = 1.0 - 2.0 * dataset.label_tensor.to(DTYPE)

    def domain_dimension(self) -> int:
        return self.dataset.num_features

    def _calculate(self, x: torch.Tensor):
        coords = self.dataset.coordinates
        weights = self.dataset.weight_tensor

        scores = torch.zeros(coords.num_examples, dtype=DTYPE)
        if coords.feature_ids.numel() > 0:
            scores.index_add_(0, coords.example_ids, x[coords.feature_ids] * coords.feature_values)

        margins = self._signs * scores
        losses = F.softplus(margins)
        d_scores = self._signs * torch.sigmoid(margins)
        if weights is not None:
            losses = losses * weights
            d_scores = d_scores * weights
        self._value = float(losses.sum())

        if coords.feature_ids.numel() > 0:
            self._derivative.index_add_(
                0, coords.feature_ids, d_scores[coords.example_ids] * coords.feature_values
            )
        self._add_prior(self.prior, x)
