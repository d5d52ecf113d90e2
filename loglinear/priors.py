"""
Regularization priors added to every objective's value and gradient.

A prior is immutable: tuning sigma means building a new prior with
with_sigma(), never mutating one that an objective already holds.

Huber (P.J. Huber 1973) is quadratic inside [-epsilon, epsilon] and linear
outside; both pieces are scaled so the gradient is continuous at the boundary:

    |w| <  eps:  w^2 / (2 eps sigma^2),   grad  w / (eps sigma^2)
    |w| >= eps:  (|w| - eps/2) / sigma^2, grad  sign(w) / sigma^2

Quartic is w^4 / (2 sigma^4) with gradient 2 w^3 / sigma^4.
"""

import dataclasses
from dataclasses import dataclass, field
import math
from typing import Optional, Sequence, Tuple

import torch

from .constants import COSH_CUTOFF, DEFAULT_EPSILON, DEFAULT_SIGMA, DTYPE
from .types import PointLike, PriorType


@dataclass(frozen=True)
class LogPrior:
    prior_type: PriorType = PriorType.Quadratic
    sigma: float = DEFAULT_SIGMA
    epsilon: float = DEFAULT_EPSILON
    # Per-coordinate sigma^2, only for MultipleQuadratic
    sigma_sq_m: Optional[Tuple[float, ...]] = None
    # Center and wrapped prior, only for Adapt
    means: Optional[torch.Tensor] = field(default=None, compare=False, repr=False)
    other: Optional["LogPrior"] = None

    def __post_init__(self):
        if not isinstance(self.prior_type, PriorType):
            raise ValueError(f"prior_type must be a PriorType, got {self.prior_type!r}")
        if not (math.isfinite(self.sigma) and self.sigma > 0):
            raise ValueError(f"sigma must be positive and finite, got {self.sigma}")
        if not (math.isfinite(self.epsilon) and self.epsilon > 0):
            raise ValueError(f"epsilon must be positive and finite, got {self.epsilon}")

        if self.prior_type == PriorType.MultipleQuadratic:
            if self.sigma_sq_m is None:
                raise ValueError("MultipleQuadratic prior requires sigma_sq_m")
            object.__setattr__(self, "sigma_sq_m", tuple(float(s) for s in self.sigma_sq_m))
            if any(not (s > 0) for s in self.sigma_sq_m):
                raise ValueError("MultipleQuadratic sigma^2 values must all be positive")

        if self.prior_type == PriorType.Adapt:
            if self.means is None or self.other is None:
                raise ValueError("Adapt prior requires both means and other")
            object.__setattr__(
                self, "means", torch.as_tensor(self.means, dtype=DTYPE).reshape(-1).clone()
            )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def null(cls) -> "LogPrior":
        return cls(PriorType.Null)

    @classmethod
    def quadratic(cls, sigma: float = DEFAULT_SIGMA) -> "LogPrior":
        return cls(PriorType.Quadratic, sigma=sigma)

    @classmethod
    def huber(cls, sigma: float = DEFAULT_SIGMA, epsilon: float = DEFAULT_EPSILON) -> "LogPrior":
        return cls(PriorType.Huber, sigma=sigma, epsilon=epsilon)

    @classmethod
    def quartic(cls, sigma: float = DEFAULT_SIGMA) -> "LogPrior":
        return cls(PriorType.Quartic, sigma=sigma)

    @classmethod
    def cosh(cls, sigma: float = DEFAULT_SIGMA) -> "LogPrior":
        return cls(PriorType.Cosh, sigma=sigma)

    @classmethod
    def multiple_quadratic(cls, C: Sequence[float]) -> "LogPrior":
        """
        Non-uniform quadratic prior from per-coordinate C = 1 / sigma^2.

        Takes C (the SVM-style hyperparameter) and stores sigma^2 = 1 / C.
        """
        if any(not (c > 0) for c in C):
            raise ValueError("MultipleQuadratic C values must all be positive")
        return cls(PriorType.MultipleQuadratic, sigma_sq_m=tuple(1.0 / c for c in C))

    @classmethod
    def adaptation(cls, means: PointLike, other: "LogPrior") -> "LogPrior":
        """Evaluate `other` at (x - means): pulls weights toward a previous model."""
        return cls(PriorType.Adapt, means=means, other=other)

    @classmethod
    def from_name(
        cls, name: str, sigma: float = DEFAULT_SIGMA, epsilon: float = DEFAULT_EPSILON
    ) -> "LogPrior":
        prior_type = PriorType.from_name(name)
        if prior_type in (PriorType.Adapt, PriorType.MultipleQuadratic):
            raise ValueError(f"Prior {name!r} cannot be built from a name alone")
        return cls(prior_type, sigma=sigma, epsilon=epsilon)

    # ------------------------------------------------------------------
    # Hyperparameters
    # ------------------------------------------------------------------

    @property
    def sigma_squared(self) -> float:
        if self.prior_type == PriorType.Adapt:
            return self.other.sigma_squared
        return self.sigma * self.sigma

    @property
    def sigma_quartic(self) -> float:
        return self.sigma_squared * self.sigma_squared

    def with_sigma(self, sigma: float) -> "LogPrior":
        """Copy of this prior with a new sigma (Adapt forwards it to the wrapped prior)."""
        if self.prior_type == PriorType.Adapt:
            return dataclasses.replace(self, other=self.other.with_sigma(sigma))
        return dataclasses.replace(self, sigma=sigma)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def compute(self, x: torch.Tensor) -> Tuple[float, torch.Tensor]:
        """
        Value and gradient of the prior at x.

        Args:
            x: Flat weight vector (float64)

        Returns:
            (value, gradient with the shape of x)
        """
        t = self.prior_type

        if t == PriorType.Null:
            return 0.0, torch.zeros_like(x)

        if t == PriorType.Quadratic:
            s2 = self.sigma_squared
            return float((x * x).sum() / (2.0 * s2)), x / s2

        if t == PriorType.Huber:
            s2 = self.sigma_squared
            eps = self.epsilon
            inside = x.abs() < eps
            value = torch.where(inside, x * x / (2.0 * eps * s2), (x.abs() - eps / 2.0) / s2)
            grad = torch.where(inside, x / (eps * s2), torch.sign(x) / s2)
            return float(value.sum()), grad

        if t == PriorType.Quartic:
            s4 = self.sigma_quartic
            x2 = x * x
            return float((x2 * x2).sum() / (2.0 * s4)), 2.0 * x2 * x / s4

        if t == PriorType.Cosh:
            s2 = self.sigma_squared
            norm = float(x.abs().sum()) / s2
            if norm > COSH_CUTOFF:
                value = norm - math.log(2.0)
                d = 1.0 / s2
            else:
                value = math.log(math.cosh(norm))
                d = math.tanh(norm) / s2
            return value, torch.sign(x) * d

        if t == PriorType.MultipleQuadratic:
            if len(self.sigma_sq_m) != x.numel():
                raise ValueError(
                    f"MultipleQuadratic prior has {len(self.sigma_sq_m)} coordinates, "
                    f"point has {x.numel()}"
                )
            s2 = torch.tensor(self.sigma_sq_m, dtype=x.dtype)
            return float((x * x / (2.0 * s2)).sum()), x / s2

        if t == PriorType.Adapt:
            if self.means.numel() != x.numel():
                raise ValueError(
                    f"Adapt prior has {self.means.numel()} means, point has {x.numel()}"
                )
            return self.other.compute(x - self.means)

        raise ValueError(f"LogPrior.compute is undefined for prior of type {t}")

    def value_at(self, x: torch.Tensor) -> float:
        return self.compute(x)[0]
