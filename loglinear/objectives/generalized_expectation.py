from typing import Optional, Sequence

import torch

from ..constants import DEFAULT_GE_SMOOTHING, DTYPE
from ..data import EncodedDataset
from ..index import FeatureClassIndex
from ..numerics import accumulate_feature_gradient, class_activations, normalize_rows
from ..priors import LogPrior
from .base import CachingDiffFunction, as_point


class GeneralizedExpectationObjective(CachingDiffFunction):
    """
    Generalized-expectation regularizer (Mann and McCallum 2008).

    For every GE feature k:

    - emp_k: label distribution of the labeled examples containing k,
      Laplace-smoothed, computed once at construction
    - model_k: the model's expected label distribution over the unlabeled
      examples containing k, smoothed the same way, recomputed every call

        value = sum_k KL(emp_k || model_k)

    With S_k[c] = sum_{d in D_k} p_d(c) and model_k = (S_k + a) / (|D_k| + C a):

        dKL_k / dS_k[c] = -emp_k[c] / (S_k[c] + a)

    and each unlabeled example's softmax contributes the C x C cross terms
    p_d(c) ([c == c'] - p_d(c')). Summed over the GE features an example
    belongs to, that collapses to one coefficient row per example:

        coeff_d[c'] = p_d(c') * (G_d[c'] - sum_c G_d[c] p_d(c)),  G_d = sum_{k: d in D_k} g_k

    GE features with no active unlabeled example are dropped.
    """

    def __init__(
        self,
        labeled: EncodedDataset,
        unlabeled: EncodedDataset,
        ge_features: Optional[Sequence[int]] = None,
        prior: Optional[LogPrior] = None,
        smoothing: float = DEFAULT_GE_SMOOTHING,
    ):
        super().__init__()
        if (labeled.num_features, labeled.num_classes) != (
            unlabeled.num_features,
            unlabeled.num_classes,
        ):
            raise ValueError(
                "Labeled and unlabeled data must share the feature and label space: "
                f"{(labeled.num_features, labeled.num_classes)} != "
                f"{(unlabeled.num_features, unlabeled.num_classes)}"
            )
        if not smoothing > 0:
            raise ValueError(f"smoothing must be positive, got {smoothing}")

        self.labeled = labeled
        self.unlabeled = unlabeled
        self.prior = prior if prior is not None else LogPrior.null()
        self.smoothing = smoothing
        self.index = FeatureClassIndex(labeled.num_features, labeled.num_classes)
        self._model: Optional[torch.Tensor] = None

        if ge_features is None:
            ge_features = torch.unique(unlabeled.feature_ids).tolist()
        ge_features = sorted(set(int(f) for f in ge_features))
        for f in ge_features:
            if not 0 <= f < labeled.num_features:
                raise ValueError(f"GE feature {f} outside [0, {labeled.num_features})")

        unlabeled_rows, unlabeled_examples = self._occurrences(unlabeled, ge_features)
        counts = torch.zeros(len(ge_features), dtype=DTYPE).index_add_(
            0, unlabeled_rows, torch.ones(unlabeled_rows.numel(), dtype=DTYPE)
        )
        active = counts > 0
        self.ge_features = [f for f, keep in zip(ge_features, active.tolist()) if keep]

        # Inverted index GE feature -> unlabeled examples, as (row, example) pairs
        self._unlabeled_rows, self._unlabeled_examples = self._occurrences(
            unlabeled, self.ge_features
        )
        self._active_counts = counts[active]
        self.empirical = self._empirical_distributions(
            *self._occurrences(labeled, self.ge_features)
        )

    @staticmethod
    def _occurrences(dataset: EncodedDataset, ge_features: Sequence[int]):
        """
        Distinct (GE feature row, example id) pairs, one per example containing the feature.

        Returns:
            (rows, example_ids), two long tensors of equal length
        """
        empty = torch.zeros(0, dtype=torch.long)
        if not ge_features or dataset.feature_ids.numel() == 0:
            return empty, empty
        row_of = torch.full((dataset.num_features,), -1, dtype=torch.long)
        row_of[torch.tensor(ge_features, dtype=torch.long)] = torch.arange(len(ge_features))
        rows = row_of[dataset.feature_ids]
        hit = rows >= 0
        # An example listing a feature twice still counts once
        keys = torch.unique(rows[hit] * dataset.num_examples + dataset.example_ids[hit])
        return keys // dataset.num_examples, keys % dataset.num_examples

    def _empirical_distributions(self, rows: torch.Tensor, example_ids: torch.Tensor) -> torch.Tensor:
        num_classes = self.labeled.num_classes
        gold = torch.zeros(rows.numel(), num_classes, dtype=DTYPE)
        gold[torch.arange(rows.numel()), self.labeled.label_tensor[example_ids]] = 1.0
        counts = torch.zeros(len(self.ge_features), num_classes, dtype=DTYPE).index_add_(0, rows, gold)
        return (counts + self.smoothing) / (
            counts.sum(dim=1, keepdim=True) + num_classes * self.smoothing
        )

    def domain_dimension(self) -> int:
        return self.index.dimension

    def to_2d(self, x) -> torch.Tensor:
        """Weights as a (num_features, num_classes) matrix."""
        return self.index.to_2d(as_point(x)).clone()

    def model_distributions(self, x) -> torch.Tensor:
        """Smoothed model label distribution for each kept GE feature."""
        self._ensure(x)
        return self._model.clone()

    def _calculate(self, x: torch.Tensor):
        num_classes = self.labeled.num_classes
        a = self.smoothing
        coords = self.unlabeled.coordinates

        _, probs = normalize_rows(class_activations(self.index.to_2d(x), coords))
        rows, examples = self._unlabeled_rows, self._unlabeled_examples
        expected = torch.zeros(len(self.ge_features), num_classes, dtype=DTYPE)
        expected.index_add_(0, rows, probs[examples])
        self._model = (expected + a) / (
            self._active_counts.unsqueeze(1) + num_classes * a
        )

        emp = self.empirical
        self._value = float((emp * (torch.log(emp) - torch.log(self._model))).sum())

        g = -emp / (expected + a)
        per_example = torch.zeros_like(probs).index_add_(0, examples, g[rows])
        centered = per_example - (per_example * probs).sum(dim=1, keepdim=True)
        accumulate_feature_gradient(self.index.to_2d(self._derivative), probs * centered, coords)
        self._add_prior(self.prior, x)
