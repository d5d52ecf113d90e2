import math

import pytest
import torch

from loglinear import (
    EncodedDataset,
    GeneralizedExpectationObjective,
    LogPrior,
    make_synthetic_dataset,
)


@pytest.fixture
def tiny_labeled():
    return EncodedDataset(num_features=3, num_classes=2, data=[[0], [1], [0, 2]], labels=[0, 1, 1])


@pytest.fixture
def tiny_unlabeled():
    return EncodedDataset(num_features=3, num_classes=2, data=[[0], [0, 1]], labels=[0, 0])


def test_ge_gradient(small_dataset, random_point, rng):
    objective = GeneralizedExpectationObjective(
        small_dataset.subset(range(10)), small_dataset.subset(range(10, 30))
    )
    x = random_point(objective, scale=0.5)
    assert objective.gradient_check(x, num_checks=24, rng=rng) < 1e-5


def test_ge_gradient_with_prior_and_smoothing(small_dataset, random_point, rng):
    objective = GeneralizedExpectationObjective(
        small_dataset.subset(range(15)),
        small_dataset.subset(range(15, 30)),
        ge_features=[0, 2, 5],
        prior=LogPrior.quadratic(),
        smoothing=0.3,
    )
    x = random_point(objective, scale=0.5)
    assert objective.gradient_check(x, num_checks=24, rng=rng) < 1e-5


def test_empirical_distributions_are_smoothed(tiny_labeled, tiny_unlabeled):
    objective = GeneralizedExpectationObjective(tiny_labeled, tiny_unlabeled)
    assert objective.ge_features == [0, 1]
    assert torch.allclose(
        objective.empirical,
        torch.tensor([[0.5, 0.5], [1.0 / 3.0, 2.0 / 3.0]], dtype=torch.float64),
    )


def test_value_at_zero_weights(tiny_labeled, tiny_unlabeled):
    objective = GeneralizedExpectationObjective(tiny_labeled, tiny_unlabeled)
    # Feature 0 already matches; feature 1 compares (1/3, 2/3) to uniform
    expected = (1.0 / 3.0) * math.log(2.0 / 3.0) + (2.0 / 3.0) * math.log(4.0 / 3.0)
    assert objective.value_at(objective.initial()) == pytest.approx(expected)


def test_features_without_unlabeled_examples_are_skipped(tiny_labeled, tiny_unlabeled):
    objective = GeneralizedExpectationObjective(tiny_labeled, tiny_unlabeled, ge_features=[0, 1, 2])
    assert objective.ge_features == [0, 1]

    empty = GeneralizedExpectationObjective(tiny_labeled, tiny_unlabeled, ge_features=[2])
    assert empty.ge_features == []
    x = torch.randn(empty.domain_dimension(), dtype=torch.float64)
    assert empty.value_at(x) == 0.0
    assert torch.equal(empty.derivative_at(x), torch.zeros(6, dtype=torch.float64))


def test_model_distributions_are_normalized(small_dataset, random_point):
    objective = GeneralizedExpectationObjective(
        small_dataset.subset(range(10)), small_dataset.subset(range(10, 30))
    )
    x = random_point(objective, scale=1.0)
    model = objective.model_distributions(x)
    assert model.shape == (len(objective.ge_features), 3)
    assert torch.allclose(model.sum(dim=1), torch.ones(model.shape[0], dtype=torch.float64))
    assert objective.value_at(x) >= 0.0


def test_mismatched_spaces(tiny_labeled):
    unlabeled = EncodedDataset(num_features=4, num_classes=2, data=[[3]], labels=[0])
    with pytest.raises(ValueError):
        GeneralizedExpectationObjective(tiny_labeled, unlabeled)


@pytest.mark.parametrize("kwargs", [dict(smoothing=0.0), dict(ge_features=[7])])
def test_invalid_configuration(tiny_labeled, tiny_unlabeled, kwargs):
    with pytest.raises(ValueError):
        GeneralizedExpectationObjective(tiny_labeled, tiny_unlabeled, **kwargs)


def test_inverted_index_grows_with_occurrences(rng):
    unlabeled, _ = make_synthetic_dataset(n=3000, num_features=3000, num_classes=3, active=3, rng=rng)
    labeled, _ = make_synthetic_dataset(n=50, num_features=3000, num_classes=3, active=3, rng=rng)
    objective = GeneralizedExpectationObjective(labeled, unlabeled)
    occurrences = 3000 * 3
    assert objective._unlabeled_rows.numel() == occurrences
    assert objective._unlabeled_examples.numel() == occurrences
    assert float(objective._active_counts.sum()) == occurrences
    value = objective.value_at(objective.initial())
    assert math.isfinite(value)


def test_repeated_feature_counts_once(tiny_labeled):
    unlabeled = EncodedDataset(num_features=3, num_classes=2, data=[[0, 0], [0, 1]], labels=[0, 0])
    objective = GeneralizedExpectationObjective(tiny_labeled, unlabeled)
    assert objective._active_counts.tolist() == [2.0, 1.0]
    model = objective.model_distributions(objective.initial())
    assert torch.allclose(model, torch.full((2, 2), 0.5, dtype=torch.float64))
