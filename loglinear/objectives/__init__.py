from .base import CachingDiffFunction, as_point
from .conditional import LogConditionalObjective
from .logistic import LogisticObjective
from .biased import BiasedLogConditionalObjective, validate_confusion_matrix
from .semisupervised import SemiSupervisedObjective
from .shift_params import ShiftParamsObjective
from .generalized_expectation import GeneralizedExpectationObjective

__all__ = [
    "CachingDiffFunction",
    "as_point",
    "LogConditionalObjective",
    "LogisticObjective",
    "BiasedLogConditionalObjective",
    "validate_confusion_matrix",
    "SemiSupervisedObjective",
    "ShiftParamsObjective",
    "GeneralizedExpectationObjective",
]
