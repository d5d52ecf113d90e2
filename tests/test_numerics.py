import math

import pytest
import torch

from loglinear import EncodedDataset, LogConditionalObjective, LogPrior, log_sum_exp
from loglinear.numerics import class_activations, log_sum_exp_rows, normalize_rows


def test_log_sum_exp_large_values_do_not_overflow():
    assert log_sum_exp([1000.0, 1000.0]) == pytest.approx(1000.0 + math.log(2.0))


def test_log_sum_exp_very_negative_values():
    value = log_sum_exp([-1000.0, -1000.0])
    assert value == pytest.approx(-1000.0 + math.log(2.0))
    assert math.isfinite(value)


def test_log_sum_exp_all_negative_infinity():
    assert log_sum_exp([-math.inf, -math.inf]) == -math.inf


def test_log_sum_exp_empty_raises():
    with pytest.raises(ValueError):
        log_sum_exp([])


def test_rows_with_negative_infinity_entries():
    scores = torch.tensor([[0.0, -math.inf], [-math.inf, -math.inf]], dtype=torch.float64)
    totals = log_sum_exp_rows(scores)
    assert totals[0].item() == 0.0
    assert totals[1].item() == -math.inf
    _, probs = normalize_rows(scores[:1])
    assert probs.tolist() == [[1.0, 0.0]]


def test_rows_match_torch_logsumexp_on_extreme_scores():
    scores = torch.tensor(
        [[1000.0, 1000.0, -5.0], [-1000.0, -999.0, -1001.0], [0.5, -math.inf, 2.0]],
        dtype=torch.float64,
    )
    totals = log_sum_exp_rows(scores)
    assert bool(torch.isfinite(totals).all())
    assert totals[0].item() == pytest.approx(1000.0 + math.log(2.0))
    assert torch.allclose(totals, torch.logsumexp(scores, dim=1))


def test_zero_feature_example_is_uniform():
    dataset = EncodedDataset(num_features=2, num_classes=3, data=[[]], labels=[1])
    x2d = torch.randn(2, 3, dtype=torch.float64)
    _, probs = normalize_rows(class_activations(x2d, dataset.coordinates))
    assert torch.allclose(probs, torch.full((1, 3), 1.0 / 3.0, dtype=torch.float64))


def test_zero_feature_example_contributes_no_gradient():
    dataset = EncodedDataset(num_features=2, num_classes=3, data=[[]], labels=[1])
    objective = LogConditionalObjective(dataset, LogPrior.null())
    x = torch.randn(objective.domain_dimension(), dtype=torch.float64)
    assert objective.value_at(x) == pytest.approx(math.log(3.0))
    assert torch.equal(objective.derivative_at(x), torch.zeros(6, dtype=torch.float64))
