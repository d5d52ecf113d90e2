from dataclasses import dataclass
from typing import Hashable, List, Optional, Sequence, Tuple, Union

import torch

from .classifiers import LinearClassifier, LogisticClassifier
from .constants import (
    DEFAULT_CONVEX_COMBO,
    DEFAULT_GE_SMOOTHING,
    DEFAULT_MAX_ITER,
    DEFAULT_TOL,
    DTYPE,
)
from .data import EncodedDataset
from .numerics import class_activations
from .objectives import (
    BiasedLogConditionalObjective,
    CachingDiffFunction,
    GeneralizedExpectationObjective,
    LogConditionalObjective,
    LogisticObjective,
    SemiSupervisedObjective,
    ShiftParamsObjective,
    as_point,
)
from .optimizers import Minimizer, make_minimizer
from .priors import LogPrior
from .types import MinimizerKind, ObjectiveKind, PointLike

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TrainerConfig:
    """How objectives are minimized. Immutable; build a new one to change it."""

    tol: float = DEFAULT_TOL
    max_iter: int = DEFAULT_MAX_ITER
    minimizer: MinimizerKind = MinimizerKind.QN
    mem: int = 15  # QN history size
    lr: float = 0.1  # GD step size
    verbose: bool = False

    def __post_init__(self):
        if not self.tol > 0:
            raise ValueError(f"tol must be positive, got {self.tol}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")

    def make_minimizer(self) -> Minimizer:
        """Fresh minimizer, so no optimizer state is shared between runs."""
        if self.minimizer == MinimizerKind.QN:
            return make_minimizer(
                self.minimizer, mem=self.mem, max_iter=self.max_iter, verbose=self.verbose
            )
        return make_minimizer(
            self.minimizer, lr=self.lr, max_iter=self.max_iter, verbose=self.verbose
        )


# -----------------------------------------------------------------------------
# Objective dispatch
# -----------------------------------------------------------------------------


def make_objective(
    kind: ObjectiveKind,
    dataset: EncodedDataset,
    prior: Optional[LogPrior] = None,
    *,
    biased_dataset: Optional[EncodedDataset] = None,
    confusion_matrix: Optional[Sequence[Sequence[float]]] = None,
    unlabeled: Optional[EncodedDataset] = None,
    ge_features: Optional[Sequence[int]] = None,
    convex_combo_coeff: float = DEFAULT_CONVEX_COMBO,
    shift_prior: Optional[LogPrior] = None,
    smoothing: float = DEFAULT_GE_SMOOTHING,
) -> CachingDiffFunction:
    """
    Construct the objective for a given kind.

    Semi-supervised objectives combine the labeled-data objective with a
    weak-signal one: the confusion-matrix objective over biased_dataset when
    confusion_matrix is given, else the GE objective over unlabeled. Both
    inner objectives get a null prior; the prior is applied once, outside.
    """
    if kind == ObjectiveKind.Conditional:
        return LogConditionalObjective(dataset, prior)
    if kind == ObjectiveKind.SummedConditional:
        return LogConditionalObjective(dataset, prior, use_summed=True)
    if kind == ObjectiveKind.Logistic:
        return LogisticObjective(dataset, prior)
    if kind == ObjectiveKind.Biased:
        if confusion_matrix is None:
            raise ValueError("Biased objective requires a confusion_matrix")
        return BiasedLogConditionalObjective(dataset, confusion_matrix, prior)
    if kind == ObjectiveKind.ShiftParams:
        return ShiftParamsObjective(dataset, prior, shift_prior)
    if kind == ObjectiveKind.GeneralizedExpectation:
        if unlabeled is None:
            raise ValueError("GE objective requires unlabeled data")
        return GeneralizedExpectationObjective(
            dataset, unlabeled, ge_features, prior, smoothing
        )
    if kind == ObjectiveKind.SemiSupervised:
        labeled_objective = LogConditionalObjective(dataset, LogPrior.null())
        if confusion_matrix is not None:
            if biased_dataset is None:
                raise ValueError("Semi-supervised training with a confusion matrix requires biased_dataset")
            weak_objective = BiasedLogConditionalObjective(
                biased_dataset, confusion_matrix, LogPrior.null()
            )
        elif unlabeled is not None:
            weak_objective = GeneralizedExpectationObjective(
                dataset, unlabeled, ge_features, LogPrior.null(), smoothing
            )
        else:
            raise ValueError(
                "Semi-supervised objective requires either biased_dataset with a "
                "confusion_matrix or unlabeled data"
            )
        return SemiSupervisedObjective(
            labeled_objective, weak_objective, prior, convex_combo_coeff
        )
    raise ValueError(f"Unknown objective kind: {kind}")


# -----------------------------------------------------------------------------
# Evaluation helpers
# -----------------------------------------------------------------------------


def dataset_log_likelihood(weights: torch.Tensor, dataset: EncodedDataset) -> float:
    """(Weighted) conditional log-likelihood of dataset under (F, C) weights."""
    objective = LogConditionalObjective(dataset, LogPrior.null())
    return -objective.value_at(objective.index.to_flat(torch.as_tensor(weights, dtype=DTYPE)))


def dataset_accuracy(weights: torch.Tensor, dataset: EncodedDataset) -> float:
    """Fraction of examples whose highest-scoring class is the gold label."""
    if dataset.num_examples == 0:
        raise ValueError("Accuracy of an empty dataset is undefined")
    sums = class_activations(torch.as_tensor(weights, dtype=DTYPE), dataset.coordinates)
    correct = sums.argmax(dim=1) == dataset.label_tensor
    return float(correct.double().mean())


# -----------------------------------------------------------------------------
# Classifier factories
# -----------------------------------------------------------------------------


class LinearClassifierFactory:
    """
    Trains LinearClassifiers by minimizing an objective.

    The factory holds immutable configuration only (prior, trainer config,
    objective kind); every training call builds a fresh objective and a
    fresh minimizer.

    Features and labels default to the integer ids of the dataset.
    """

    def __init__(
        self,
        prior: Optional[LogPrior] = None,
        config: Optional[TrainerConfig] = None,
        use_summed: bool = False,
    ):
        self.prior = prior if prior is not None else LogPrior.quadratic()
        self.config = config if config is not None else TrainerConfig()
        self.use_summed = use_summed

    @property
    def kind(self) -> ObjectiveKind:
        return ObjectiveKind.SummedConditional if self.use_summed else ObjectiveKind.Conditional

    def _minimize(
        self, objective: CachingDiffFunction, initial: Optional[PointLike] = None
    ) -> torch.Tensor:
        x = self.config.make_minimizer().minimize(objective, self.config.tol, initial)
        if self.config.verbose:
            print(
                f"{type(objective).__name__}: value={objective.value_at(x):.6g} "
                f"after {objective.num_calculations} evaluations"
            )
        return x

    @staticmethod
    def _names(
        dataset: EncodedDataset,
        features: Optional[Sequence[Hashable]],
        labels: Optional[Sequence[Hashable]],
    ) -> Tuple[List[Hashable], List[Hashable]]:
        features = list(range(dataset.num_features)) if features is None else list(features)
        labels = list(range(dataset.num_classes)) if labels is None else list(labels)
        return features, labels

    # ------------------------------------------------------------------
    # Supervised
    # ------------------------------------------------------------------

    def train_weights(
        self,
        dataset: EncodedDataset,
        prior: Optional[LogPrior] = None,
        initial: Optional[PointLike] = None,
    ) -> torch.Tensor:
        """
        Train and return weights of shape (num_features, num_classes).

        Args:
            dataset: Training data
            prior: Overrides the factory's prior for this run
            initial: Flat starting point (zeros if None)
        """
        objective = make_objective(self.kind, dataset, prior if prior is not None else self.prior)
        return objective.to_2d(self._minimize(objective, initial))

    def train_classifier(
        self,
        dataset: EncodedDataset,
        features: Optional[Sequence[Hashable]] = None,
        labels: Optional[Sequence[Hashable]] = None,
    ) -> LinearClassifier:
        features, labels = self._names(dataset, features, labels)
        return LinearClassifier(self.train_weights(dataset), features, labels)

    # ------------------------------------------------------------------
    # Semi-supervised
    # ------------------------------------------------------------------

    def train_classifier_semisup(
        self,
        labeled: EncodedDataset,
        biased: EncodedDataset,
        confusion_matrix: Sequence[Sequence[float]],
        convex_combo_coeff: float = DEFAULT_CONVEX_COMBO,
        features: Optional[Sequence[Hashable]] = None,
        labels: Optional[Sequence[Hashable]] = None,
    ) -> LinearClassifier:
        """Labeled data mixed with noisily-labeled data through a confusion matrix."""
        objective = make_objective(
            ObjectiveKind.SemiSupervised,
            labeled,
            self.prior,
            biased_dataset=biased,
            confusion_matrix=confusion_matrix,
            convex_combo_coeff=convex_combo_coeff,
        )
        weights = objective.objective.to_2d(self._minimize(objective))
        features, labels = self._names(labeled, features, labels)
        return LinearClassifier(weights, features, labels)

    def train_semisup_ge(
        self,
        labeled: EncodedDataset,
        unlabeled: EncodedDataset,
        ge_features: Optional[Sequence[int]] = None,
        convex_combo_coeff: float = DEFAULT_CONVEX_COMBO,
        smoothing: float = DEFAULT_GE_SMOOTHING,
        features: Optional[Sequence[Hashable]] = None,
        labels: Optional[Sequence[Hashable]] = None,
    ) -> LinearClassifier:
        """Labeled data regularized by generalized expectation on unlabeled data."""
        objective = make_objective(
            ObjectiveKind.SemiSupervised,
            labeled,
            self.prior,
            unlabeled=unlabeled,
            ge_features=ge_features,
            convex_combo_coeff=convex_combo_coeff,
            smoothing=smoothing,
        )
        weights = objective.objective.to_2d(self._minimize(objective))
        features, labels = self._names(labeled, features, labels)
        return LinearClassifier(weights, features, labels)

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def train_shift_params(
        self,
        dataset: EncodedDataset,
        shift_prior: Optional[LogPrior] = None,
        features: Optional[Sequence[Hashable]] = None,
        labels: Optional[Sequence[Hashable]] = None,
    ) -> Tuple[LinearClassifier, torch.Tensor]:
        """
        Train with per-example shift parameters.

        Returns:
            (classifier over the model weights only, shifts of shape
            (num_examples, num_classes - 1))
        """
        objective = make_objective(
            ObjectiveKind.ShiftParams, dataset, self.prior, shift_prior=shift_prior
        )
        x = self._minimize(objective)
        features, labels = self._names(dataset, features, labels)
        classifier = LinearClassifier.from_reference_class(objective.to_2d(x), features, labels)
        return classifier, objective.shifts(x)

    def adapt_weights(
        self,
        dataset: EncodedDataset,
        previous: Union[LinearClassifier, torch.Tensor],
        features: Optional[Sequence[Hashable]] = None,
        labels: Optional[Sequence[Hashable]] = None,
    ) -> LinearClassifier:
        """
        Domain adaptation: retrain on dataset with the factory's prior
        centered at previous weights instead of at zero.

        previous is a classifier or a (num_features, num_classes) weight
        matrix over the same feature and label space.
        """
        if isinstance(previous, LinearClassifier):
            if features is None:
                features = previous.features
            if labels is None:
                labels = previous.labels
            previous = previous.weights
        means = as_point(torch.as_tensor(previous))
        prior = LogPrior.adaptation(means, self.prior)
        weights = self.train_weights(dataset, prior=prior, initial=means)
        features, labels = self._names(dataset, features, labels)
        return LinearClassifier(weights, features, labels)

    # ------------------------------------------------------------------
    # Hyperparameter search
    # ------------------------------------------------------------------

    def heldout_set_sigma(
        self,
        train: EncodedDataset,
        dev: EncodedDataset,
        sigmas: Sequence[float] = (0.1, 0.3, 1.0, 3.0, 10.0),
        metric: str = "log_likelihood",
    ) -> Tuple[float, float]:
        """
        Pick the prior sigma that scores best on a held-out set.

        Each candidate trains a fresh objective on train with the factory's
        prior rebuilt at that sigma; nothing is mutated between trials.

        Args:
            train: Training data
            dev: Held-out data
            sigmas: Candidate sigmas, tried in order (first wins ties)
            metric: 'log_likelihood' or 'accuracy' on dev, higher is better

        Returns:
            (best sigma, its dev score)
        """
        if metric == "log_likelihood":
            score_fn = dataset_log_likelihood
        elif metric == "accuracy":
            score_fn = dataset_accuracy
        else:
            raise ValueError(f"Unknown metric: {metric!r}")
        if len(sigmas) == 0:
            raise ValueError("heldout_set_sigma needs at least one candidate sigma")

        if self.config.verbose:
            print(f"Tuning sigma over [{', '.join(str(s) for s in sigmas)}] ({metric})")

        best_sigma, best_score = None, None
        for sigma in sigmas:
            weights = self.train_weights(train, prior=self.prior.with_sigma(sigma))
            score = score_fn(weights, dev)
            if self.config.verbose:
                print(f"  - sigma={sigma}: {metric}={score:.6g}")
            if best_score is None or score > best_score:
                best_sigma, best_score = sigma, score

        if self.config.verbose:
            print(f"Best sigma={best_sigma} ({metric}={best_score:.6g})")
        return best_sigma, best_score


class LogisticClassifierFactory:
    """Trains binary LogisticClassifiers on two-class datasets."""

    def __init__(
        self,
        prior: Optional[LogPrior] = None,
        config: Optional[TrainerConfig] = None,
    ):
        self.prior = prior if prior is not None else LogPrior.quadratic()
        self.config = config if config is not None else TrainerConfig()

    def train_weights(self, dataset: EncodedDataset) -> torch.Tensor:
        """Train and return one weight per feature."""
        objective = make_objective(ObjectiveKind.Logistic, dataset, self.prior)
        return self.config.make_minimizer().minimize(objective, self.config.tol)

    def train_classifier(
        self,
        dataset: EncodedDataset,
        features: Optional[Sequence[Hashable]] = None,
        classes: Tuple[Hashable, Hashable] = (0, 1),
    ) -> LogisticClassifier:
        features = list(range(dataset.num_features)) if features is None else list(features)
        return LogisticClassifier(self.train_weights(dataset), features, classes)
