"""
Bijections between flat weight-vector positions and (feature, class) pairs.

Every objective owns exactly one index scheme and reads/writes its weight
vector only through it, so a layout change never ripples into the loss code.
"""

from abc import ABC, abstractmethod
from typing import Tuple

import torch


class IndexScheme(ABC):
    def __init__(self, num_features: int, num_classes: int):
        if num_features < 0:
            raise ValueError(f"num_features must be >= 0, got {num_features}")
        if num_classes < 1:
            raise ValueError(f"num_classes must be >= 1, got {num_classes}")
        self.num_features = num_features
        self.num_classes = num_classes

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @abstractmethod
    def index_of(self, feature: int, klass: int) -> int:
        pass

    @abstractmethod
    def pair_of(self, index: int) -> Tuple[int, int]:
        """Inverse of index_of: flat position -> (feature, class)."""
        pass

    @abstractmethod
    def to_2d(self, x: torch.Tensor) -> torch.Tensor:
        """View of the flat vector in the scheme's natural matrix shape."""
        pass

    def feature_of(self, index: int) -> int:
        return self.pair_of(index)[0]

    def class_of(self, index: int) -> int:
        return self.pair_of(index)[1]

    def _check_feature(self, feature: int):
        if not 0 <= feature < self.num_features:
            raise IndexError(f"feature {feature} outside [0, {self.num_features})")

    def _check_index(self, index: int):
        if not 0 <= index < self.dimension:
            raise IndexError(f"index {index} outside [0, {self.dimension})")

    def __eq__(self, other) -> bool:
        return (
            type(self) is type(other)
            and self.num_features == other.num_features
            and self.num_classes == other.num_classes
        )

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.num_features, self.num_classes))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(num_features={self.num_features}, num_classes={self.num_classes})"


class FeatureClassIndex(IndexScheme):
    """Feature-major layout: index = feature * num_classes + class."""

    @property
    def dimension(self) -> int:
        return self.num_features * self.num_classes

    def index_of(self, feature: int, klass: int) -> int:
        self._check_feature(feature)
        if not 0 <= klass < self.num_classes:
            raise IndexError(f"class {klass} outside [0, {self.num_classes})")
        return feature * self.num_classes + klass

    def pair_of(self, index: int) -> Tuple[int, int]:
        self._check_index(index)
        return index // self.num_classes, index % self.num_classes

    def to_2d(self, x: torch.Tensor) -> torch.Tensor:
        """(num_features, num_classes) view sharing storage with x."""
        return x.view(self.num_features, self.num_classes)

    def to_flat(self, weights: torch.Tensor) -> torch.Tensor:
        if tuple(weights.shape) != (self.num_features, self.num_classes):
            raise ValueError(
                f"Expected weights of shape {(self.num_features, self.num_classes)}, "
                f"got {tuple(weights.shape)}"
            )
        return weights.reshape(-1)


class ReferenceClassIndex(IndexScheme):
    """
    Class-major layout for reference-class parameterizations.

    Class 0 has no parameters (its activation is fixed at 0); classes
    1..num_classes-1 each own a contiguous block of num_features weights:
    index = (class - 1) * num_features + feature.
    """

    @property
    def dimension(self) -> int:
        return (self.num_classes - 1) * self.num_features

    def index_of(self, feature: int, klass: int) -> int:
        self._check_feature(feature)
        if not 1 <= klass < self.num_classes:
            raise IndexError(
                f"class {klass} outside [1, {self.num_classes}); class 0 is the reference class"
            )
        return (klass - 1) * self.num_features + feature

    def pair_of(self, index: int) -> Tuple[int, int]:
        self._check_index(index)
        return index % self.num_features, index // self.num_features + 1

    def to_2d(self, x: torch.Tensor) -> torch.Tensor:
        """(num_classes - 1, num_features) view sharing storage with x."""
        return x.view(self.num_classes - 1, self.num_features)

    def to_full_2d(self, x: torch.Tensor) -> torch.Tensor:
        """(num_features, num_classes) copy with a zero reference column."""
        full = torch.zeros(self.num_features, self.num_classes, dtype=x.dtype)
        full[:, 1:] = self.to_2d(x).T
        return full
