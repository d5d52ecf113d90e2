import pytest
import torch

from loglinear import GDMinimizer, LogConditionalObjective, LogPrior, MinimizerKind, QNMinimizer
from loglinear.optimizers import make_minimizer, make_minimizer_factory


def test_qn_reaches_a_stationary_point(small_dataset):
    objective = LogConditionalObjective(small_dataset, LogPrior.quadratic())
    x = QNMinimizer(max_iter=500).minimize(objective, tol=1e-12)
    assert objective.derivative_at(x).abs().max().item() < 1e-3
    assert objective.value_at(x) < objective.value_at(objective.initial())


def test_qn_does_not_modify_initial(small_dataset):
    objective = LogConditionalObjective(small_dataset)
    initial = torch.full((objective.domain_dimension(),), 0.1, dtype=torch.float64)
    QNMinimizer(max_iter=5).minimize(objective, initial=initial)
    assert torch.equal(initial, torch.full_like(initial, 0.1))


def test_gd_decreases_the_objective(small_dataset):
    objective = LogConditionalObjective(small_dataset)
    minimizer = GDMinimizer(lr=0.01, max_iter=20)
    x = minimizer.minimize(objective, tol=1e-12)
    assert objective.value_at(x) < objective.value_at(objective.initial())
    assert 1 <= minimizer.iterations <= 20


def test_make_minimizer():
    assert isinstance(make_minimizer(MinimizerKind.QN, mem=5), QNMinimizer)
    assert isinstance(make_minimizer(MinimizerKind.GD, lr=0.5), GDMinimizer)
    with pytest.raises(ValueError):
        make_minimizer("bogus")


def test_minimizer_factory_returns_fresh_instances():
    factory = make_minimizer_factory(MinimizerKind.QN, mem=7)
    first, second = factory(), factory(verbose=True)
    assert first is not second
    assert first.mem == 7 and second.verbose


@pytest.mark.parametrize("kwargs", [dict(lr=0.0), dict(max_iter=0)])
def test_invalid_minimizer_settings(kwargs):
    with pytest.raises(ValueError):
        GDMinimizer(**kwargs)
