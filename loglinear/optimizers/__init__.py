from .base import (
    Minimizer,
    make_minimizer,
    make_minimizer_factory,
)
from .quasi_newton import QNMinimizer
from .first_order import GDMinimizer

__all__ = [
    "Minimizer",
    "make_minimizer",
    "make_minimizer_factory",
    "QNMinimizer",
    "GDMinimizer",
]
