from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
import torch

from .constants import DTYPE
from .numerics import Coordinates


@dataclass(frozen=True)
class EncodedDataset:
    """
    Read-only view of an indexed classification dataset.

    Feature and label resolution has already happened: every example is a
    sequence of integer feature ids, optionally paired with real values, and
    an integer gold label.

    Besides the per-example sequences, the dataset exposes a flat
    "coordinate" view that every objective works from:

    - feature_ids[k]: feature id of the k-th active occurrence
    - example_ids[k]: example that occurrence belongs to
    - feature_values[k]: its value (1.0 for presence-only data)

    The coordinate tensors are built once at construction and shared.
    """

    num_features: int
    num_classes: int
    data: Tuple[Tuple[int, ...], ...]
    labels: Tuple[int, ...]
    values: Optional[Tuple[Tuple[float, ...], ...]] = None
    data_weights: Optional[Tuple[float, ...]] = None

    feature_ids: torch.Tensor = field(init=False, repr=False, compare=False)
    example_ids: torch.Tensor = field(init=False, repr=False, compare=False)
    feature_values: torch.Tensor = field(init=False, repr=False, compare=False)
    label_tensor: torch.Tensor = field(init=False, repr=False, compare=False)
    weight_tensor: Optional[torch.Tensor] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        # Normalize to tuples so the view really is immutable
        object.__setattr__(self, "data", tuple(tuple(int(f) for f in d) for d in self.data))
        object.__setattr__(self, "labels", tuple(int(y) for y in self.labels))
        if self.values is not None:
            object.__setattr__(
                self, "values", tuple(tuple(float(v) for v in row) for row in self.values)
            )
        if self.data_weights is not None:
            object.__setattr__(
                self, "data_weights", tuple(float(w) for w in self.data_weights)
            )

        self._validate()

        n = len(self.data)
        lengths = [len(d) for d in self.data]
        feature_ids = [f for d in self.data for f in d]
        example_ids = np.repeat(np.arange(n, dtype=np.int64), lengths)

        object.__setattr__(self, "feature_ids", torch.tensor(feature_ids, dtype=torch.long))
        object.__setattr__(self, "example_ids", torch.from_numpy(example_ids))
        if self.values is None:
            feature_values = torch.ones(len(feature_ids), dtype=DTYPE)
        else:
            feature_values = torch.tensor(
                [v for row in self.values for v in row], dtype=DTYPE
            )
        object.__setattr__(self, "feature_values", feature_values)
        object.__setattr__(self, "label_tensor", torch.tensor(self.labels, dtype=torch.long))
        object.__setattr__(
            self,
            "weight_tensor",
            None
            if self.data_weights is None
            else torch.tensor(self.data_weights, dtype=DTYPE),
        )

    def _validate(self):
        if self.num_features < 0:
            raise ValueError(f"num_features must be >= 0, got {self.num_features}")
        if self.num_classes < 1:
            raise ValueError(f"num_classes must be >= 1, got {self.num_classes}")

        n = len(self.data)
        if len(self.labels) != n:
            raise ValueError(
                f"labels has length {len(self.labels)} but data has length {n}"
            )
        if self.values is not None:
            if len(self.values) != n:
                raise ValueError(
                    f"values has length {len(self.values)} but data has length {n}"
                )
            for d, (features, vals) in enumerate(zip(self.data, self.values)):
                if len(features) != len(vals):
                    raise ValueError(
                        f"Example {d}: {len(features)} features but {len(vals)} values"
                    )
        if self.data_weights is not None:
            if len(self.data_weights) != n:
                raise ValueError(
                    f"data_weights has length {len(self.data_weights)} but data has length {n}"
                )
            if any(w < 0 for w in self.data_weights):
                raise ValueError("data_weights must be non-negative")

        for d, features in enumerate(self.data):
            for f in features:
                if not 0 <= f < self.num_features:
                    raise ValueError(
                        f"Example {d}: feature id {f} outside [0, {self.num_features})"
                    )
        for d, y in enumerate(self.labels):
            if not 0 <= y < self.num_classes:
                raise ValueError(
                    f"Example {d}: label {y} outside [0, {self.num_classes})"
                )

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(
            self.feature_ids, self.example_ids, self.feature_values, len(self.data)
        )

    @property
    def num_examples(self) -> int:
        return len(self.data)

    @property
    def is_real_valued(self) -> bool:
        return self.values is not None

    def __len__(self) -> int:
        return len(self.data)

    def subset(self, indices: Sequence[int]) -> "EncodedDataset":
        """New dataset over the given examples, same feature and label space."""
        indices = [int(i) for i in indices]
        return EncodedDataset(
            num_features=self.num_features,
            num_classes=self.num_classes,
            data=[self.data[i] for i in indices],
            labels=[self.labels[i] for i in indices],
            values=None if self.values is None else [self.values[i] for i in indices],
            data_weights=None
            if self.data_weights is None
            else [self.data_weights[i] for i in indices],
        )

    def with_weights(self, data_weights: Optional[Sequence[float]]) -> "EncodedDataset":
        return EncodedDataset(
            num_features=self.num_features,
            num_classes=self.num_classes,
            data=self.data,
            labels=self.labels,
            values=self.values,
            data_weights=data_weights,
        )


def make_synthetic_dataset(
    n: int = 200,
    num_features: int = 20,
    num_classes: int = 3,
    active: int = 4,
    weight_scale: float = 1.0,
    real_valued: bool = False,
    weighted: bool = False,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[EncodedDataset, np.ndarray]:
    """Sample a categorical dataset from a hidden log-linear model.

    Args:
        n: Number of examples
        num_features: Size of the feature space
        num_classes: Number of classes
        active: Active features per example (sampled without replacement)
        weight_scale: Standard deviation of the hidden weights
        real_valued: Attach uniform(0.5, 1.5) values to every active feature
        weighted: Attach uniform(0.5, 2.0) per-example importance weights
        rng: numpy.random.Generator instance (optional). If None, creates a new default_rng.

    Returns:
        (dataset, hidden weights of shape (num_features, num_classes))
    """
    if rng is None:
        rng = np.random.default_rng()
    active = min(active, num_features)

    w_true = rng.standard_normal((num_features, num_classes)) * weight_scale

    data, values, labels = [], [], []
    for _ in range(n):
        features = rng.choice(num_features, size=active, replace=False)
        vals = rng.uniform(0.5, 1.5, size=active) if real_valued else np.ones(active)
        scores = (w_true[features] * vals[:, None]).sum(axis=0)
        probs = np.exp(scores - scores.max())
        probs /= probs.sum()
        labels.append(int(rng.choice(num_classes, p=probs)))
        data.append(features.tolist())
        values.append(vals.tolist())

    data_weights = rng.uniform(0.5, 2.0, size=n).tolist() if weighted else None

    dataset = EncodedDataset(
        num_features=num_features,
        num_classes=num_classes,
        data=data,
        labels=labels,
        values=values if real_valued else None,
        data_weights=data_weights,
    )
    return dataset, w_true
