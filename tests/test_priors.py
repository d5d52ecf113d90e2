import math

import pytest
import torch

from loglinear import LogPrior, PriorType


def numeric_gradient(prior: LogPrior, x: torch.Tensor, eps: float = 1e-6) -> torch.Tensor:
    grad = torch.zeros_like(x)
    for i in range(x.numel()):
        plus, minus = x.clone(), x.clone()
        plus[i] += eps
        minus[i] -= eps
        grad[i] = (prior.value_at(plus) - prior.value_at(minus)) / (2.0 * eps)
    return grad


@pytest.fixture
def point():
    return torch.tensor([0.7, -1.3, 0.05, 2.1, -0.02], dtype=torch.float64)


@pytest.mark.parametrize(
    "prior",
    [
        LogPrior.quadratic(sigma=1.5),
        LogPrior.huber(sigma=0.8, epsilon=0.1),
        LogPrior.quartic(sigma=1.2),
        LogPrior.cosh(sigma=2.0),
        LogPrior.multiple_quadratic([1.0, 2.0, 0.5, 4.0, 1.0]),
        LogPrior.adaptation([0.1, 0.2, 0.3, 0.4, 0.5], LogPrior.huber(sigma=1.0, epsilon=0.2)),
    ],
    ids=lambda p: p.prior_type.value,
)
def test_prior_gradient_matches_finite_differences(prior, point):
    _, grad = prior.compute(point)
    assert torch.allclose(grad, numeric_gradient(prior, point), atol=1e-6)


def test_null_prior_is_a_no_op(point):
    value, grad = LogPrior.null().compute(point)
    assert value == 0.0
    assert torch.equal(grad, torch.zeros_like(point))


def test_quadratic_values():
    value, grad = LogPrior.quadratic(sigma=2.0).compute(torch.tensor([1.0, 2.0], dtype=torch.float64))
    assert value == pytest.approx(5.0 / 8.0)
    assert grad.tolist() == pytest.approx([0.25, 0.5])


def test_quartic_gradient_is_the_true_derivative():
    value, grad = LogPrior.quartic(sigma=1.0).compute(torch.tensor([2.0], dtype=torch.float64))
    assert value == pytest.approx(8.0)
    assert grad.item() == pytest.approx(16.0)


def test_huber_zero_gradient_at_origin():
    _, grad = LogPrior.huber().compute(torch.zeros(3, dtype=torch.float64))
    assert torch.equal(grad, torch.zeros(3, dtype=torch.float64))


def test_huber_is_continuous_at_epsilon():
    prior = LogPrior.huber(sigma=0.5, epsilon=0.2)
    below = torch.tensor([0.2 - 1e-9], dtype=torch.float64)
    above = torch.tensor([0.2 + 1e-9], dtype=torch.float64)
    value_below, grad_below = prior.compute(below)
    value_above, grad_above = prior.compute(above)
    assert value_below == pytest.approx(value_above, abs=1e-7)
    assert grad_below.item() == pytest.approx(grad_above.item(), abs=1e-6)
    assert grad_above.item() == pytest.approx(1.0 / 0.25)


def test_cosh_large_norm_uses_asymptote():
    prior = LogPrior.cosh(sigma=1.0)
    x = torch.tensor([400.0, -400.0], dtype=torch.float64)
    value, grad = prior.compute(x)
    assert value == pytest.approx(800.0 - math.log(2.0))
    assert grad.tolist() == [1.0, -1.0]


def test_multiple_quadratic_takes_inverse_variances():
    prior = LogPrior.multiple_quadratic([1.0, 2.0, 4.0])
    value, grad = prior.compute(torch.ones(3, dtype=torch.float64))
    assert value == pytest.approx(3.5)
    assert grad.tolist() == pytest.approx([1.0, 2.0, 4.0])
    with pytest.raises(ValueError):
        prior.compute(torch.ones(2, dtype=torch.float64))


def test_adaptation_is_centered_at_means():
    means = torch.tensor([1.0, -2.0], dtype=torch.float64)
    prior = LogPrior.adaptation(means, LogPrior.quadratic())
    value, grad = prior.compute(means.clone())
    assert value == 0.0
    assert torch.equal(grad, torch.zeros(2, dtype=torch.float64))


def test_from_name_is_case_insensitive():
    assert LogPrior.from_name("HUBER", sigma=2.0).prior_type == PriorType.Huber
    assert LogPrior.from_name("Quadratic").sigma == 1.0
    assert PriorType.from_name("null") == PriorType.Null


@pytest.mark.parametrize("name", ["gaussian", "adapt", "multiple_quadratic"])
def test_from_name_rejects(name):
    with pytest.raises(ValueError):
        LogPrior.from_name(name)


@pytest.mark.parametrize("kwargs", [dict(sigma=0.0), dict(sigma=-1.0), dict(epsilon=0.0), dict(sigma=math.inf)])
def test_invalid_hyperparameters(kwargs):
    with pytest.raises(ValueError):
        LogPrior(PriorType.Huber, **kwargs)


def test_adapt_requires_means_and_other():
    with pytest.raises(ValueError):
        LogPrior(PriorType.Adapt)


def test_with_sigma_returns_a_new_prior():
    prior = LogPrior.huber(sigma=1.0, epsilon=0.3)
    tuned = prior.with_sigma(3.0)
    assert prior.sigma == 1.0
    assert tuned.sigma == 3.0
    assert tuned.epsilon == 0.3

    adapted = LogPrior.adaptation([0.0], prior).with_sigma(2.0)
    assert adapted.other.sigma == 2.0
    assert adapted.sigma_squared == 4.0
