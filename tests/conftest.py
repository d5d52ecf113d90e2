import numpy as np
import pytest
import torch

from loglinear import EncodedDataset, make_synthetic_dataset


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def small_dataset(rng) -> EncodedDataset:
    """30 presence-only examples, 8 features, 3 classes."""
    dataset, _ = make_synthetic_dataset(n=30, num_features=8, num_classes=3, active=3, rng=rng)
    return dataset


@pytest.fixture
def real_valued_dataset(rng) -> EncodedDataset:
    """Real-valued features with per-example weights."""
    dataset, _ = make_synthetic_dataset(
        n=30, num_features=8, num_classes=3, active=3, real_valued=True, weighted=True, rng=rng
    )
    return dataset


@pytest.fixture
def binary_dataset(rng) -> EncodedDataset:
    dataset, _ = make_synthetic_dataset(n=60, num_features=6, num_classes=2, active=3, rng=rng)
    return dataset


@pytest.fixture
def random_point(rng):
    """Factory for a random float64 point in an objective's domain."""

    def make(fn, scale: float = 0.3) -> torch.Tensor:
        return torch.tensor(rng.standard_normal(fn.domain_dimension()) * scale, dtype=torch.float64)

    return make
