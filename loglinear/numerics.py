"""
Shared numerical routines for every objective.

All objectives reduce to the same three steps over the coordinate view of a
dataset:

1. activations: sums[d, c] = sum_k x2d[feature_k, c] * value_k over the
   occurrences k of example d
2. normalization: total[d] = logsumexp(sums[d]), probs = exp(sums - total)
3. gradient: grad2d[f, c] += sum_k coeff[d_k, c] * value_k over occurrences
   of feature f

Steps 1 and 3 are a gather/scatter pair implemented with index_add_, so a
whole evaluation is one vectorized pass with no per-example Python loop.
"""

from typing import NamedTuple, Sequence, Tuple, Union

import torch

from .constants import DTYPE


class Coordinates(NamedTuple):
    """Flattened (example, feature, value) occurrences of a dataset."""

    feature_ids: torch.Tensor
    example_ids: torch.Tensor
    feature_values: torch.Tensor
    num_examples: int


def log_sum_exp(values: Union[torch.Tensor, Sequence[float]]) -> float:
    """
    Stable log(sum(exp(values))).

    log_sum_exp([1000, 1000]) = 1000 + log 2 without overflow; a vector of
    only -inf returns -inf rather than NaN.
    """
    t = torch.as_tensor(values, dtype=DTYPE).reshape(-1)
    if t.numel() == 0:
        raise ValueError("log_sum_exp of an empty sequence is undefined")
    return float(log_sum_exp_rows(t.unsqueeze(0))[0])


def log_sum_exp_rows(scores: torch.Tensor) -> torch.Tensor:
    """Row-wise stable log-sum-exp of an (N, C) tensor, returns shape (N,)."""
    return torch.logsumexp(scores, dim=1)


def normalize_rows(scores: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    Softmax with its log normalizer.

    Returns:
        (totals of shape (N,), probs of shape (N, C))
    """
    totals = log_sum_exp_rows(scores)
    probs = torch.exp(scores - totals.unsqueeze(1))
    return totals, probs


def class_activations(x2d: torch.Tensor, coords: Coordinates) -> torch.Tensor:
    """
    Per-example class activations.

    Args:
        x2d: Weights of shape (num_features, num_classes)
        coords: Coordinate view of the data

    Returns:
        sums of shape (num_examples, num_classes); examples with no active
        features get an all-zero row (uniform distribution)
    """
    sums = torch.zeros(coords.num_examples, x2d.shape[1], dtype=x2d.dtype)
    if coords.feature_ids.numel() == 0:
        return sums
    contributions = x2d[coords.feature_ids] * coords.feature_values.unsqueeze(1)
    sums.index_add_(0, coords.example_ids, contributions)
    return sums


def accumulate_feature_gradient(
    grad2d: torch.Tensor, coeff: torch.Tensor, coords: Coordinates
) -> torch.Tensor:
    """
    In-place grad2d[f, c] += sum over occurrences of f of coeff[d, c] * value.

    Args:
        grad2d: Gradient view of shape (num_features, num_classes), updated in place
        coeff: Per-example class coefficients, shape (num_examples, num_classes)
        coords: Coordinate view of the data

    Returns:
        grad2d, for chaining
    """
    if coords.feature_ids.numel() == 0:
        return grad2d
    contributions = coeff[coords.example_ids] * coords.feature_values.unsqueeze(1)
    grad2d.index_add_(0, coords.feature_ids, contributions)
    return grad2d
