from typing import Optional

import torch

from ..constants import DTYPE
from ..data import EncodedDataset
from ..index import ReferenceClassIndex
from ..numerics import Coordinates, accumulate_feature_gradient, class_activations, normalize_rows
from ..priors import LogPrior
from .base import CachingDiffFunction, as_point


class ShiftParamsObjective(CachingDiffFunction):
    """
    Multinomial log-likelihood with one shift parameter per training example.

    The feature space is augmented from F to F + N: example d additionally
    carries the synthetic feature F + d with value 1, so every example gets a
    private per-class bias that can absorb a noisy label.

    Class 0 is the reference class with activation fixed at 0; only classes
    1..C-1 have weights, stored class-major in a ReferenceClassIndex over the
    augmented feature space.

    Regularization is split by block:
    - prior applies to the model weights (augmented feature < F)
    - shift_prior applies to the shift parameters (augmented feature >= F);
      an L1-style penalty belongs here, e.g. a Huber prior with small epsilon
    """

    def __init__(
        self,
        dataset: EncodedDataset,
        prior: Optional[LogPrior] = None,
        shift_prior: Optional[LogPrior] = None,
    ):
        super().__init__()
        if dataset.num_classes < 2:
            raise ValueError("ShiftParamsObjective needs at least two classes")
        self.dataset = dataset
        self.prior = prior if prior is not None else LogPrior.quadratic()
        self.shift_prior = shift_prior

        n = dataset.num_examples
        self.num_model_features = dataset.num_features
        self.index = ReferenceClassIndex(dataset.num_features + n, dataset.num_classes)

        coords = dataset.coordinates
        shift_ids = torch.arange(n, dtype=torch.long)
        self._coords = Coordinates(
            feature_ids=torch.cat([coords.feature_ids, shift_ids + dataset.num_features]),
            example_ids=torch.cat([coords.example_ids, shift_ids]),
            feature_values=torch.cat([coords.feature_values, torch.ones(n, dtype=DTYPE)]),
            num_examples=n,
        )

        augmented_feature = torch.arange(self.index.dimension) % self.index.num_features
        self._weight_mask = augmented_feature < dataset.num_features

        gold = torch.zeros(n, dataset.num_classes, dtype=DTYPE)
        gold[torch.arange(n), dataset.label_tensor] = 1.0
        self._gold_one_hot = gold

    def domain_dimension(self) -> int:
        return self.index.dimension

    def regularized_mask(self) -> torch.Tensor:
        """Boolean mask over the domain, True on the model-weight block."""
        return self._weight_mask.clone()

    def weight_block_indices(self) -> torch.Tensor:
        return self._weight_mask.nonzero().flatten()

    def shift_block_indices(self) -> torch.Tensor:
        return (~self._weight_mask).nonzero().flatten()

    def to_2d(self, x) -> torch.Tensor:
        """Model weights as a (num_classes - 1, num_features) matrix, shifts dropped."""
        return self.index.to_2d(as_point(x))[:, : self.num_model_features].clone()

    def full_weights(self, x) -> torch.Tensor:
        """Model weights as (num_features, num_classes) with a zero reference column."""
        return self.index.to_full_2d(as_point(x))[: self.num_model_features]

    def shifts(self, x) -> torch.Tensor:
        """Per-example shift parameters, shape (num_examples, num_classes - 1)."""
        return self.index.to_2d(as_point(x))[:, self.num_model_features :].T.clone()

    def _calculate(self, x: torch.Tensor):
        weights = self.dataset.weight_tensor
        labels = self.dataset.label_tensor
        n = self._coords.num_examples

        non_reference = class_activations(self.index.to_2d(x).T, self._coords)
        sums = torch.cat([torch.zeros(n, 1, dtype=DTYPE), non_reference], dim=1)
        totals, probs = normalize_rows(sums)

        log_likelihood = sums.gather(1, labels.unsqueeze(1)).squeeze(1) - totals
        coeff = (probs - self._gold_one_hot)[:, 1:]
        if weights is not None:
            log_likelihood = log_likelihood * weights
            coeff = coeff * weights.unsqueeze(1)
        self._value = -float(log_likelihood.sum())

        grad = torch.zeros(self.index.num_features, self.index.num_classes - 1, dtype=DTYPE)
        accumulate_feature_gradient(grad, coeff, self._coords)
        self.index.to_2d(self._derivative).copy_(grad.T)

        self._add_prior(self.prior, x, self._weight_mask)
        self._add_prior(self.shift_prior, x, ~self._weight_mask)
