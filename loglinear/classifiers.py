from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import torch

from .constants import DTYPE
from .numerics import log_sum_exp

# An example is either an iterable of active feature labels (presence-only)
# or a mapping feature label -> real value
Example = Union[Iterable[Hashable], Mapping[Hashable, float]]


def _feature_values(example: Example) -> List[Tuple[Hashable, float]]:
    if isinstance(example, Mapping):
        return [(f, float(v)) for f, v in example.items()]
    return [(f, 1.0) for f in example]


class LinearClassifier:
    """
    Multinomial log-linear classifier over trained (feature, class) weights.

    Weights are stored as a (num_features, num_classes) matrix aligned with
    the feature and label lists. Features the classifier has never seen are
    ignored when scoring. Optional per-class thresholds are added to the
    class scores.
    """

    def __init__(
        self,
        weights: torch.Tensor,
        features: Sequence[Hashable],
        labels: Sequence[Hashable],
        thresholds: Optional[Sequence[float]] = None,
    ):
        weights = torch.as_tensor(weights, dtype=DTYPE)
        if tuple(weights.shape) != (len(features), len(labels)):
            raise ValueError(
                f"Weights of shape {tuple(weights.shape)} do not match "
                f"{len(features)} features x {len(labels)} labels"
            )
        if thresholds is None:
            thresholds = [0.0] * len(labels)
        if len(thresholds) != len(labels):
            raise ValueError(
                f"Got {len(thresholds)} thresholds for {len(labels)} labels"
            )
        self.weights = weights.clone()
        self.features = list(features)
        self.labels = list(labels)
        self.thresholds = torch.tensor(list(thresholds), dtype=DTYPE)
        self._feature_index = {f: i for i, f in enumerate(self.features)}
        self._label_index = {label: i for i, label in enumerate(self.labels)}
        if len(self._feature_index) != len(self.features):
            raise ValueError("Feature labels must be unique")
        if len(self._label_index) != len(self.labels):
            raise ValueError("Class labels must be unique")

    @classmethod
    def from_reference_class(
        cls,
        weights: torch.Tensor,
        features: Sequence[Hashable],
        labels: Sequence[Hashable],
        thresholds: Optional[Sequence[float]] = None,
    ) -> "LinearClassifier":
        """
        Build from a (num_classes - 1, num_features) matrix where labels[0]
        is the reference class with all-zero weights.
        """
        weights = torch.as_tensor(weights, dtype=DTYPE)
        if tuple(weights.shape) != (len(labels) - 1, len(features)):
            raise ValueError(
                f"Reference-class weights of shape {tuple(weights.shape)} do not match "
                f"{len(labels) - 1} non-reference labels x {len(features)} features"
            )
        full = torch.zeros(len(features), len(labels), dtype=DTYPE)
        full[:, 1:] = weights.T
        return cls(full, features, labels, thresholds)

    def _label_position(self, label: Hashable) -> int:
        if label not in self._label_index:
            raise KeyError(f"Unknown label: {label!r}")
        return self._label_index[label]

    def _score_vector(self, example: Example) -> torch.Tensor:
        scores = self.thresholds.clone()
        for feature, value in _feature_values(example):
            i = self._feature_index.get(feature)
            if i is not None:
                scores += self.weights[i] * value
        return scores

    def scores_of(self, example: Example) -> Dict[Hashable, float]:
        """Unnormalized score of every class."""
        scores = self._score_vector(example)
        return {label: float(s) for label, s in zip(self.labels, scores)}

    def score_of(self, example: Example, label: Hashable) -> float:
        return float(self._score_vector(example)[self._label_position(label)])

    def log_probability_of(self, example: Example) -> Dict[Hashable, float]:
        scores = self._score_vector(example)
        total = log_sum_exp(scores)
        return {label: float(s) - total for label, s in zip(self.labels, scores)}

    def probability_of(self, example: Example) -> Dict[Hashable, float]:
        probs = torch.softmax(self._score_vector(example), dim=0)
        return {label: float(p) for label, p in zip(self.labels, probs)}

    def class_of(self, example: Example) -> Hashable:
        """Highest-scoring label (first one on ties)."""
        return self.labels[int(torch.argmax(self._score_vector(example)))]

    def weight(self, feature: Hashable, label: Hashable) -> float:
        """Weight of (feature, label); 0 for a feature the classifier does not know."""
        i = self._feature_index.get(feature)
        if i is None:
            return 0.0
        return float(self.weights[i, self._label_position(label)])

    def feature_count(self) -> int:
        """Number of features carrying at least one non-zero weight."""
        return int((self.weights != 0).any(dim=1).sum())

    def top_features(
        self, n: int = 10, label: Optional[Hashable] = None
    ) -> List[Tuple[Tuple[Hashable, Hashable], float]]:
        """
        The n largest weights by magnitude.

        Args:
            n: How many (feature, label) pairs to return
            label: Restrict to a single class (all classes if None)

        Returns:
            [((feature, label), weight), ...] sorted by decreasing |weight|
        """
        if label is None:
            columns = list(range(len(self.labels)))
        else:
            columns = [self._label_position(label)]
        block = self.weights[:, columns]
        k = min(n, block.numel())
        if k <= 0:
            return []
        _, order = torch.topk(block.abs().reshape(-1), k)
        top = []
        for flat in order.tolist():
            f, j = divmod(flat, len(columns))
            c = columns[j]
            top.append(((self.features[f], self.labels[c]), float(self.weights[f, c])))
        return top

    def weights_as_dict(self) -> Dict[Tuple[Hashable, Hashable], float]:
        return {
            (feature, label): float(self.weights[i, j])
            for i, feature in enumerate(self.features)
            for j, label in enumerate(self.labels)
        }

    def __repr__(self) -> str:
        return (
            f"LinearClassifier(num_features={len(self.features)}, "
            f"labels={self.labels!r})"
        )


class LogisticClassifier:
    """
    Binary logistic classifier with one weight per feature.

    classes = (negative, positive); the score s is the weighted sum of the
    active features and P(positive) = sigmoid(s).
    """

    def __init__(
        self,
        weights: torch.Tensor,
        features: Sequence[Hashable],
        classes: Tuple[Hashable, Hashable] = (0, 1),
    ):
        weights = torch.as_tensor(weights, dtype=DTYPE).reshape(-1)
        if weights.numel() != len(features):
            raise ValueError(
                f"Got {weights.numel()} weights for {len(features)} features"
            )
        if len(classes) != 2:
            raise ValueError(f"LogisticClassifier needs exactly two classes, got {classes!r}")
        self.weights = weights.clone()
        self.features = list(features)
        self.classes = tuple(classes)
        self._feature_index = {f: i for i, f in enumerate(self.features)}

    def score_of(self, example: Example) -> float:
        score = 0.0
        for feature, value in _feature_values(example):
            i = self._feature_index.get(feature)
            if i is not None:
                score += float(self.weights[i]) * value
        return score

    def probability_of(self, example: Example) -> float:
        """P(classes[1] | example)."""
        return float(torch.sigmoid(torch.tensor(self.score_of(example), dtype=DTYPE)))

    def class_of(self, example: Example) -> Hashable:
        return self.classes[1] if self.score_of(example) > 0 else self.classes[0]

    def justification_of(self, example: Example) -> List[Tuple[Hashable, float]]:
        """Per-feature contributions to the score, largest magnitude first."""
        contributions = []
        for feature, value in _feature_values(example):
            i = self._feature_index.get(feature)
            if i is not None:
                contributions.append((feature, float(self.weights[i]) * value))
        contributions.sort(key=lambda fc: abs(fc[1]), reverse=True)
        return contributions

    def __repr__(self) -> str:
        return (
            f"LogisticClassifier(num_features={len(self.features)}, "
            f"classes={self.classes!r})"
        )
