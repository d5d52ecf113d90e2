from typing import Optional, Sequence

import torch

from ..constants import DTYPE, ROW_SUM_TOL
from ..data import EncodedDataset
from ..index import FeatureClassIndex
from ..numerics import accumulate_feature_gradient, class_activations, normalize_rows
from ..priors import LogPrior
from .base import CachingDiffFunction, as_point


def validate_confusion_matrix(confusion, num_classes: int) -> torch.Tensor:
    """
    Check that confusion[observed][true] is a row-stochastic num_classes x num_classes matrix.

    Returns:
        The matrix as a float64 tensor
    """
    matrix = torch.as_tensor(confusion, dtype=DTYPE)
    if tuple(matrix.shape) != (num_classes, num_classes):
        raise ValueError(
            f"Confusion matrix must be {num_classes}x{num_classes}, got {tuple(matrix.shape)}"
        )
    if not bool(torch.isfinite(matrix).all()):
        raise ValueError("Confusion matrix entries must be finite")
    if bool((matrix < 0).any()) or bool((matrix > 1).any()):
        raise ValueError("Confusion matrix entries must lie in [0, 1]")
    row_sums = matrix.sum(dim=1)
    bad_rows = (row_sums - 1.0).abs() > ROW_SUM_TOL
    if bool(bad_rows.any()):
        rows = bad_rows.nonzero().flatten().tolist()
        raise ValueError(f"Confusion matrix rows {rows} do not sum to 1: {row_sums[bad_rows].tolist()}")
    return matrix


class BiasedLogConditionalObjective(CachingDiffFunction):
    """
    Conditional likelihood of noisy observed labels.

    The model's distribution over true classes is pushed through a fixed
    confusion matrix confusion[y][c] = P(observed y | true c):

        loss_d = -log(sum_c confusion[y][c] * p(c | d))
               = -(logsumexp_c(log confusion[y][c] + sums[c]) - logsumexp(sums))

        dloss_d / dsums[c] = probs[c] - weighted_probs[c]

    Zero entries have log = -inf and simply drop out of the second
    log-sum-exp. With the identity matrix this is exactly the plain
    conditional objective. Entries are therefore checked against [0, 1]
    rather than (0, 1]; each row still sums to 1, so every observed label
    keeps at least one possible true class.

    Only presence-only features are supported.
    """

    def __init__(
        self,
        dataset: EncodedDataset,
        confusion_matrix: Sequence[Sequence[float]],
        prior: Optional[LogPrior] = None,
    ):
        super().__init__()
        if dataset.is_real_valued:
            raise NotImplementedError(
                "BiasedLogConditionalObjective is not implemented for real-valued features"
            )
        self.dataset = dataset
        self.prior = prior if prior is not None else LogPrior.quadratic()
        self.confusion_matrix = validate_confusion_matrix(confusion_matrix, dataset.num_classes)
        self.index = FeatureClassIndex(dataset.num_features, dataset.num_classes)
        # Row of log confusion probabilities for each example's observed label
        self._log_confusion = torch.log(self.confusion_matrix)[dataset.label_tensor]

    def domain_dimension(self) -> int:
        return self.index.dimension

    def to_2d(self, x) -> torch.Tensor:
        """Weights as a (num_features, num_classes) matrix."""
        return self.index.to_2d(as_point(x)).clone()

    def _calculate(self, x: torch.Tensor):
        coords = self.dataset.coordinates
        weights = self.dataset.weight_tensor

        sums = class_activations(self.index.to_2d(x), coords)
        totals, probs = normalize_rows(sums)
        weighted_totals, weighted_probs = normalize_rows(self._log_confusion + sums)

        log_likelihood = weighted_totals - totals
        coeff = probs - weighted_probs
        if weights is not None:
            log_likelihood = log_likelihood * weights
            coeff = coeff * weights.unsqueeze(1)
        self._value = -float(log_likelihood.sum())

        accumulate_feature_gradient(self.index.to_2d(self._derivative), coeff, coords)
        self._add_prior(self.prior, x)
