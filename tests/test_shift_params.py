import pytest
import torch

from loglinear import (
    EncodedDataset,
    LinearClassifier,
    LogConditionalObjective,
    LogPrior,
    ShiftParamsObjective,
)


def test_shift_params_gradient(small_dataset, random_point, rng):
    objective = ShiftParamsObjective(
        small_dataset, LogPrior.quadratic(), shift_prior=LogPrior.huber(1.0, 0.05)
    )
    x = random_point(objective)
    assert objective.gradient_check(x, num_checks=40, rng=rng) < 1e-5


def test_blocks_partition_the_domain(small_dataset):
    objective = ShiftParamsObjective(small_dataset)
    # (C - 1) * (F + N) parameters, (C - 1) * F of them model weights
    assert objective.domain_dimension() == 2 * (8 + 30)
    assert int(objective.regularized_mask().sum()) == 2 * 8
    weights = set(objective.weight_block_indices().tolist())
    shifts = set(objective.shift_block_indices().tolist())
    assert not weights & shifts
    assert len(weights | shifts) == objective.domain_dimension()


def test_shapes(small_dataset, random_point):
    objective = ShiftParamsObjective(small_dataset)
    x = random_point(objective)
    assert objective.to_2d(x).shape == (2, 8)
    assert objective.full_weights(x).shape == (8, 3)
    assert objective.shifts(x).shape == (30, 2)
    assert torch.equal(objective.full_weights(x)[:, 0], torch.zeros(8, dtype=torch.float64))


def test_zero_shifts_reduce_to_conditional(small_dataset, random_point):
    objective = ShiftParamsObjective(small_dataset, LogPrior.null())
    x = random_point(objective)
    x[objective.shift_block_indices()] = 0.0
    conditional = LogConditionalObjective(small_dataset, LogPrior.null())
    flat = objective.full_weights(x).reshape(-1)
    assert objective.value_at(x) == pytest.approx(conditional.value_at(flat))


def test_priors_apply_to_their_own_block(small_dataset, random_point):
    weight_prior = LogPrior.quadratic(0.5)
    shift_prior = LogPrior.quartic(2.0)
    plain = ShiftParamsObjective(small_dataset, LogPrior.null())
    regularized = ShiftParamsObjective(small_dataset, weight_prior, shift_prior)
    x = random_point(plain)
    mask = plain.regularized_mask()
    expected = plain.value_at(x) + weight_prior.value_at(x[mask]) + shift_prior.value_at(x[~mask])
    assert regularized.value_at(x) == pytest.approx(expected)


def test_example_shift_only_moves_its_example(small_dataset):
    objective = ShiftParamsObjective(small_dataset, LogPrior.null())
    x = objective.initial()
    grad = objective.derivative_at(x)
    shift_grads = objective.shifts(grad)
    # At zero weights every example is uniform: d/d shift_{d,c} = 1/3 - [y_d == c]
    labels = torch.tensor(small_dataset.labels)
    for c in (1, 2):
        expected = 1.0 / 3.0 - (labels == c).double()
        assert torch.allclose(shift_grads[:, c - 1], expected)


def test_reference_class_classifier_agrees(small_dataset, random_point):
    objective = ShiftParamsObjective(small_dataset)
    x = random_point(objective, scale=1.0)
    classifier = LinearClassifier.from_reference_class(
        objective.to_2d(x), list(range(8)), list(range(3))
    )
    assert torch.allclose(classifier.weights, objective.full_weights(x))

    example = small_dataset.data[0]
    scores = objective.full_weights(x)[list(example)].sum(dim=0)
    probs = torch.softmax(scores, dim=0)
    predicted = classifier.probability_of(example)
    assert [predicted[c] for c in range(3)] == pytest.approx(probs.tolist())


def test_needs_two_classes():
    dataset = EncodedDataset(num_features=2, num_classes=1, data=[[0]], labels=[0])
    with pytest.raises(ValueError):
        ShiftParamsObjective(dataset)
