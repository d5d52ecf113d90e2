from typing import Optional

import torch
from tqdm import tqdm

from ..constants import DEFAULT_MAX_ITER, DEFAULT_TOL, DTYPE
from ..objectives.base import CachingDiffFunction
from ..types import PointLike
from .base import Minimizer


class QNMinimizer(Minimizer):
    """
    Limited-memory quasi-Newton (L-BFGS) on top of torch.optim.LBFGS.

    The objective's gradient is fed in through the closure instead of
    autograd. Every outer iteration is one LBFGS step with a strong-Wolfe
    line search; LBFGS re-queries the starting point of each step, which the
    objective's memo cell answers without another data pass.
    """

    def __init__(
        self,
        mem: int = 15,
        max_iter: int = DEFAULT_MAX_ITER,
        verbose: bool = False,
    ):
        super().__init__(max_iter=max_iter, verbose=verbose)
        self.mem = mem

    def minimize(
        self,
        fn: CachingDiffFunction,
        tol: float = DEFAULT_TOL,
        initial: Optional[PointLike] = None,
    ) -> torch.Tensor:
        param = torch.nn.Parameter(self._start(fn, initial))
        optimizer = torch.optim.LBFGS(
            [param],
            lr=1.0,
            max_iter=1,
            history_size=self.mem,
            tolerance_grad=1e-12,
            tolerance_change=1e-15,
            line_search_fn="strong_wolfe",
        )

        def closure():
            optimizer.zero_grad()
            value, grad = fn.value_and_gradient(param.detach())
            param.grad = grad
            return torch.tensor(value, dtype=DTYPE)

        previous = fn.value_at(param.detach())
        iterator = tqdm(range(self.max_iter), desc="QN") if self.verbose else range(self.max_iter)
        self.iterations = 0
        for _ in iterator:
            optimizer.step(closure)
            self.iterations += 1
            current = fn.value_at(param.detach())
            if self.verbose:
                iterator.set_postfix(value=f"{current:.6g}")
            if self._converged(previous, current, tol):
                break
            previous = current

        return param.detach().clone()
