from typing import Optional

import torch
from tqdm import tqdm

from ..constants import DEFAULT_MAX_ITER, DEFAULT_TOL
from ..objectives.base import CachingDiffFunction
from ..types import PointLike
from .base import Minimizer


class GDMinimizer(Minimizer):
    """Plain gradient descent with a fixed step size: x = x - lr * grad."""

    def __init__(
        self,
        lr: float = 0.1,
        max_iter: int = DEFAULT_MAX_ITER,
        verbose: bool = False,
    ):
        super().__init__(max_iter=max_iter, verbose=verbose)
        if not lr > 0:
            raise ValueError(f"lr must be positive, got {lr}")
        self.lr = lr

    def minimize(
        self,
        fn: CachingDiffFunction,
        tol: float = DEFAULT_TOL,
        initial: Optional[PointLike] = None,
    ) -> torch.Tensor:
        x = self._start(fn, initial)
        previous, grad = fn.value_and_gradient(x)

        iterator = tqdm(range(self.max_iter), desc="GD") if self.verbose else range(self.max_iter)
        self.iterations = 0
        for _ in iterator:
            x -= self.lr * grad
            current, grad = fn.value_and_gradient(x)
            self.iterations += 1
            if self.verbose:
                iterator.set_postfix(value=f"{current:.6g}", grad_norm=f"{grad.norm():.3g}")
            if self._converged(previous, current, tol):
                break
            previous = current

        return x
