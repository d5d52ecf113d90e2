from abc import ABC, abstractmethod
from typing import Callable, Optional

import torch

from ..constants import DEFAULT_MAX_ITER, DEFAULT_TOL
from ..objectives.base import CachingDiffFunction, as_point
from ..types import MinimizerKind, PointLike

# -----------------------------------------------------------------------------
# Minimizer Base Class
# -----------------------------------------------------------------------------


class Minimizer(ABC):
    """
    Drives a CachingDiffFunction to a (local) minimum.

    Minimizers only see the value/gradient oracle; they never look inside
    the objective. Stopping rule shared by all minimizers: relative change of
    the value below tol, or max_iter iterations.
    """

    def __init__(self, max_iter: int = DEFAULT_MAX_ITER, verbose: bool = False):
        if max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {max_iter}")
        self.max_iter = max_iter
        self.verbose = verbose
        self.iterations = 0

    @abstractmethod
    def minimize(
        self,
        fn: CachingDiffFunction,
        tol: float = DEFAULT_TOL,
        initial: Optional[PointLike] = None,
    ) -> torch.Tensor:
        """
        Minimize fn starting from initial (zeros if None).

        Returns:
            The final point as a float64 tensor
        """
        pass

    @staticmethod
    def _start(fn: CachingDiffFunction, initial: Optional[PointLike]) -> torch.Tensor:
        return fn.initial() if initial is None else as_point(initial).clone()

    @staticmethod
    def _converged(previous: float, current: float, tol: float) -> bool:
        scale = max(abs(previous), abs(current), 1.0)
        return abs(previous - current) / scale < tol


# -----------------------------------------------------------------------------
# Factory Functions
# -----------------------------------------------------------------------------


def make_minimizer(kind: MinimizerKind = MinimizerKind.QN, **kwargs) -> Minimizer:
    """Create a minimizer by kind, forwarding hyperparameters to its constructor."""
    from .quasi_newton import QNMinimizer
    from .first_order import GDMinimizer

    if kind == MinimizerKind.QN:
        return QNMinimizer(**kwargs)
    if kind == MinimizerKind.GD:
        return GDMinimizer(**kwargs)
    raise ValueError(f"Unknown minimizer kind: {kind}")


def make_minimizer_factory(
    kind: MinimizerKind = MinimizerKind.QN, **fixed_kwargs
) -> Callable[..., Minimizer]:
    """
    Create a minimizer factory with fixed hyperparameters.

    Each call returns a fresh minimizer, so no optimizer state leaks between
    training runs (e.g. between sigma-tuning trials).

    Example:
        >>> qn_factory = make_minimizer_factory(MinimizerKind.QN, mem=10)
        >>> minimizer = qn_factory(verbose=True)
    """

    def factory(**kwargs) -> Minimizer:
        merged = {**fixed_kwargs, **kwargs}
        return make_minimizer(kind, **merged)

    return factory
