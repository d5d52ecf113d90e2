from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np
import torch

from ..constants import DTYPE, FD_EPS
from ..types import PointLike


def as_point(x: PointLike) -> torch.Tensor:
    """Coerce tensors, numpy arrays and float sequences to a 1-D float64 tensor."""
    if isinstance(x, torch.Tensor):
        t = x.detach()
        if t.dtype != DTYPE:
            t = t.to(DTYPE)
    else:
        t = torch.as_tensor(np.asarray(x, dtype=np.float64))
    return t.reshape(-1)


class CachingDiffFunction(ABC):
    """
    Differentiable objective with a one-point memo cell.

    Subclasses implement _calculate(x), which must set self._value and fill
    self._derivative (already allocated, zeroed) in the same pass.

    The memo cell {last point, value, gradient} is keyed on the VALUE of the
    point: a query recomputes iff the point is not torch.equal to a private
    copy of the last one. Call order and object identity play no part, so an
    optimizer that mutates its array in place still gets fresh results, and
    value_at(x) followed by derivative_at(x) costs exactly one data pass.

    The gradient buffer is allocated on the first calculation and zeroed in
    place afterwards; derivative_at() hands out a copy so the cached buffer
    is never exposed.
    """

    def __init__(self):
        self._last_x: Optional[torch.Tensor] = None
        self._value: float = 0.0
        self._derivative: Optional[torch.Tensor] = None
        self._num_calculations = 0

    @abstractmethod
    def domain_dimension(self) -> int:
        pass

    @abstractmethod
    def _calculate(self, x: torch.Tensor):
        """Set self._value and accumulate into the zeroed self._derivative."""
        pass

    @property
    def num_calculations(self) -> int:
        """Number of full passes over the data so far."""
        return self._num_calculations

    def initial(self) -> torch.Tensor:
        return torch.zeros(self.domain_dimension(), dtype=DTYPE)

    def _ensure(self, x: PointLike) -> torch.Tensor:
        point = as_point(x)
        if point.numel() != self.domain_dimension():
            raise ValueError(
                f"Point has dimension {point.numel()}, expected {self.domain_dimension()}"
            )
        if self._last_x is not None and torch.equal(point, self._last_x):
            return self._last_x

        if self._derivative is None:
            self._derivative = torch.zeros(self.domain_dimension(), dtype=DTYPE)
        else:
            self._derivative.zero_()

        last_x = point.clone()
        # Invalidate first so a failed calculation never leaves a half-written cache
        self._last_x = None
        self._calculate(last_x)
        self._num_calculations += 1
        self._last_x = last_x
        return last_x

    def _add_prior(self, prior, x: torch.Tensor, mask: Optional[torch.Tensor] = None):
        """Add a prior's value and gradient once, optionally restricted to mask."""
        if prior is None:
            return
        if mask is None:
            value, grad = prior.compute(x)
            self._derivative += grad
        else:
            value, grad = prior.compute(x[mask])
            self._derivative[mask] += grad
        self._value += value

    def value_at(self, x: PointLike) -> float:
        self._ensure(x)
        return self._value

    def derivative_at(self, x: PointLike) -> torch.Tensor:
        self._ensure(x)
        return self._derivative.clone()

    def value_and_gradient(self, x: PointLike) -> Tuple[float, torch.Tensor]:
        self._ensure(x)
        return self._value, self._derivative.clone()

    def gradient_check(
        self,
        x: Optional[PointLike] = None,
        num_checks: int = 20,
        eps: float = FD_EPS,
        rng: Optional[np.random.Generator] = None,
    ) -> float:
        """
        Compare the analytic gradient to centered finite differences.

        Args:
            x: Point to check at (defaults to zeros)
            num_checks: Number of random coordinates to probe (all if larger than the domain)
            eps: Finite-difference step
            rng: numpy.random.Generator for picking coordinates

        Returns:
            Largest absolute difference between analytic and numeric partials
        """
        if rng is None:
            rng = np.random.default_rng()
        point = self.initial() if x is None else as_point(x).clone()
        analytic = self.derivative_at(point)

        dim = self.domain_dimension()
        if num_checks >= dim:
            coords = np.arange(dim)
        else:
            coords = rng.choice(dim, size=num_checks, replace=False)

        max_diff = 0.0
        for i in coords:
            i = int(i)
            original = float(point[i])
            point[i] = original + eps
            plus = self.value_at(point)
            point[i] = original - eps
            minus = self.value_at(point)
            point[i] = original
            numeric = (plus - minus) / (2.0 * eps)
            max_diff = max(max_diff, abs(numeric - float(analytic[i])))
        return max_diff
