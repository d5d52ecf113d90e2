"""Log-linear classifier training: objectives, priors, minimizers, classifiers"""

# Core types
from .types import (
    PriorType,
    ObjectiveKind,
    MinimizerKind,
)

# Data
from .data import (
    EncodedDataset,
    make_synthetic_dataset,
)

# Index schemes
from .index import (
    IndexScheme,
    FeatureClassIndex,
    ReferenceClassIndex,
)

# Numerics
from .numerics import log_sum_exp

# Priors
from .priors import LogPrior

# Objectives
from .objectives import (
    CachingDiffFunction,
    LogConditionalObjective,
    LogisticObjective,
    BiasedLogConditionalObjective,
    SemiSupervisedObjective,
    ShiftParamsObjective,
    GeneralizedExpectationObjective,
)

# Minimizers
from .optimizers import (
    Minimizer,
    QNMinimizer,
    GDMinimizer,
)

# Classifiers
from .classifiers import LinearClassifier, LogisticClassifier

# Training
from .factory import (
    TrainerConfig,
    make_objective,
    dataset_accuracy,
    dataset_log_likelihood,
    LinearClassifierFactory,
    LogisticClassifierFactory,
)

__all__ = [
    # Types
    "PriorType",
    "ObjectiveKind",
    "MinimizerKind",
    # Data
    "EncodedDataset",
    "make_synthetic_dataset",
    # Index schemes
    "IndexScheme",
    "FeatureClassIndex",
    "ReferenceClassIndex",
    # Numerics
    "log_sum_exp",
    # Priors
    "LogPrior",
    # Objectives
    "CachingDiffFunction",
    "LogConditionalObjective",
    "LogisticObjective",
    "BiasedLogConditionalObjective",
    "SemiSupervisedObjective",
    "ShiftParamsObjective",
    "GeneralizedExpectationObjective",
    # Minimizers
    "Minimizer",
    "QNMinimizer",
    "GDMinimizer",
    # Classifiers
    "LinearClassifier",
    "LogisticClassifier",
    # Training
    "TrainerConfig",
    "make_objective",
    "dataset_accuracy",
    "dataset_log_likelihood",
    "LinearClassifierFactory",
    "LogisticClassifierFactory",
]
