"""Configurable runner script that trains a log-linear classifier on synthetic data.

Usage:
    # Using presets (other args optional):
    python run.py --preset conditional
    python run.py --preset biased
    python run.py --preset ge --quiet
    python run.py --preset conditional --tune-sigma

    # Manual configuration:
    python run.py --objective conditional --prior huber --sigma 2.0 --minimizer qn
    python run.py --objective logistic --prior quadratic --classes 2
"""

import argparse

import numpy as np

from loglinear import (
    EncodedDataset,
    LinearClassifierFactory,
    LogisticClassifierFactory,
    LogPrior,
    MinimizerKind,
    ObjectiveKind,
    TrainerConfig,
    dataset_accuracy,
    make_objective,
    make_synthetic_dataset,
)

OBJECTIVES = ["conditional", "summed", "logistic", "biased", "semisup", "ge", "shift"]

# Preset configurations
PRESETS = {
    "conditional": {"objective": "conditional", "prior": "quadratic", "classes": 3},
    "summed": {"objective": "summed", "prior": "quadratic", "classes": 3},
    "logistic": {"objective": "logistic", "prior": "quadratic", "classes": 2},
    "biased": {"objective": "biased", "prior": "quadratic", "classes": 3},
    "semisup": {"objective": "semisup", "prior": "quadratic", "classes": 3},
    "ge": {"objective": "ge", "prior": "quadratic", "classes": 3},
    "shift": {"objective": "shift", "prior": "quadratic", "classes": 3},
}


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Train log-linear classifiers on synthetic data with CLI arguments or presets"
    )

    parser.add_argument(
        "--preset",
        type=str,
        choices=list(PRESETS.keys()),
        help="Preset configuration. When used, other arguments become optional "
        "(can override defaults).",
    )
    parser.add_argument(
        "--objective",
        type=str,
        choices=OBJECTIVES,
        help="Objective to minimize",
    )
    parser.add_argument(
        "--prior",
        type=str,
        help="Prior name: null, quadratic, huber, quartic or cosh",
    )
    parser.add_argument("--sigma", type=float, default=1.0, help="Prior sigma (default: 1.0)")
    parser.add_argument(
        "--epsilon", type=float, default=0.1, help="Huber epsilon (default: 0.1)"
    )
    parser.add_argument(
        "--minimizer",
        type=str,
        choices=[k.value for k in MinimizerKind],
        default="qn",
        help="Minimizer: 'qn' (L-BFGS) or 'gd' (gradient descent)",
    )
    parser.add_argument("--n", type=int, default=400, help="Number of examples (default: 400)")
    parser.add_argument(
        "--features", type=int, default=30, help="Size of the feature space (default: 30)"
    )
    parser.add_argument("--classes", type=int, help="Number of classes")
    parser.add_argument(
        "--noise",
        type=float,
        default=0.3,
        help="Label flip probability for the biased/semisup/shift presets (default: 0.3)",
    )
    parser.add_argument(
        "--alpha",
        type=float,
        default=0.5,
        help="Convex combination weight of the labeled objective (default: 0.5)",
    )
    parser.add_argument("--iters", type=int, default=200, help="Maximum iterations (default: 200)")
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    parser.add_argument(
        "--tune-sigma",
        action="store_true",
        help="Pick sigma on a held-out split before the final run (conditional objective only)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Disable progress output during training",
    )

    args = parser.parse_args()

    if not args.preset:
        required_args = [("objective", "--objective"), ("prior", "--prior")]
        missing = [arg for arg, _ in required_args if not getattr(args, arg)]
        if missing:
            parser.error(
                f"Either --preset must be specified, or all of these arguments are required: "
                f"{', '.join([flag for arg, flag in required_args if arg in missing])}"
            )

    return args


def apply_preset(args):
    """Fill in preset values, allowing explicit arguments to override them."""
    if args.preset:
        preset = PRESETS[args.preset]
        if not args.objective:
            args.objective = preset["objective"]
        if not args.prior:
            args.prior = preset["prior"]
        if not args.classes:
            args.classes = preset["classes"]
    if not args.classes:
        args.classes = 2 if args.objective == "logistic" else 3
    return args


def confusion_matrix(num_classes: int, noise: float) -> np.ndarray:
    """Symmetric label noise: keep with 1 - noise, flip uniformly otherwise."""
    if num_classes == 1:
        return np.ones((1, 1))
    off = noise / (num_classes - 1)
    matrix = np.full((num_classes, num_classes), off)
    np.fill_diagonal(matrix, 1.0 - noise)
    return matrix


def corrupt_labels(
    dataset: EncodedDataset, matrix: np.ndarray, rng: np.random.Generator
) -> EncodedDataset:
    """Resample every label through the confusion matrix (columns are true classes)."""
    labels = [
        int(rng.choice(dataset.num_classes, p=matrix[:, y] / matrix[:, y].sum()))
        for y in dataset.labels
    ]
    return EncodedDataset(
        num_features=dataset.num_features,
        num_classes=dataset.num_classes,
        data=dataset.data,
        labels=labels,
        values=dataset.values,
        data_weights=dataset.data_weights,
    )


def split(dataset: EncodedDataset, rng: np.random.Generator):
    """Shuffle and split into (labeled, extra, test) with 25/50/25 proportions."""
    order = rng.permutation(dataset.num_examples)
    a, b = dataset.num_examples // 4, 3 * dataset.num_examples // 4
    return dataset.subset(order[:a]), dataset.subset(order[a:b]), dataset.subset(order[b:])


def train(args, prior, config, labeled, extra, rng):
    """Train the configured objective. Returns (F, C) weights or an (F,) vector for logistic."""
    if args.objective == "logistic":
        return LogisticClassifierFactory(prior, config).train_weights(labeled)

    factory = LinearClassifierFactory(prior, config, use_summed=args.objective == "summed")

    if args.objective in ("conditional", "summed"):
        return factory.train_weights(labeled)

    matrix = confusion_matrix(args.classes, args.noise)
    if args.objective == "biased":
        noisy = corrupt_labels(extra, matrix, rng)
        objective = make_objective(
            ObjectiveKind.Biased, noisy, prior, confusion_matrix=matrix
        )
        return objective.to_2d(config.make_minimizer().minimize(objective, config.tol))
    if args.objective == "semisup":
        noisy = corrupt_labels(extra, matrix, rng)
        return factory.train_classifier_semisup(labeled, noisy, matrix, args.alpha).weights
    if args.objective == "ge":
        return factory.train_semisup_ge(labeled, extra, convex_combo_coeff=args.alpha).weights
    if args.objective == "shift":
        noisy = corrupt_labels(labeled, matrix, rng)
        classifier, shifts = factory.train_shift_params(
            noisy, shift_prior=LogPrior.huber(sigma=1.0, epsilon=0.01)
        )
        if config.verbose:
            print(f"  Mean |shift|: {float(shifts.abs().mean()):.4f}")
        return classifier.weights
    raise ValueError(f"Unknown objective: {args.objective}")


def main():
    """Main entry point."""
    args = parse_args()

    if args.preset:
        print(f"Using preset: {args.preset}")
        print()

    args = apply_preset(args)
    verbose = not args.quiet

    print("Configuration:")
    print(f"  Objective: {args.objective}")
    print(f"  Prior: {args.prior} (sigma={args.sigma}, epsilon={args.epsilon})")
    print(f"  Minimizer: {args.minimizer}")
    print(f"  Data: n={args.n}, features={args.features}, classes={args.classes}")
    print()

    rng = np.random.default_rng(args.seed)
    dataset, _ = make_synthetic_dataset(
        n=args.n, num_features=args.features, num_classes=args.classes, rng=rng
    )
    labeled, extra, test = split(dataset, rng)

    prior = LogPrior.from_name(args.prior, sigma=args.sigma, epsilon=args.epsilon)
    config = TrainerConfig(
        max_iter=args.iters, minimizer=MinimizerKind(args.minimizer), verbose=verbose
    )

    if args.tune_sigma:
        if args.objective != "conditional":
            raise ValueError("--tune-sigma is only supported with the conditional objective")
        best_sigma, _ = LinearClassifierFactory(prior, config).heldout_set_sigma(labeled, extra)
        prior = prior.with_sigma(best_sigma)

    print("Running training...")
    weights = train(args, prior, config, labeled, extra, rng)

    if args.objective == "logistic":
        # Class 0 is the negation of class 1: scores (0, s)
        weights = np.stack([np.zeros(weights.shape[0]), weights.numpy()], axis=1)
    accuracy = dataset_accuracy(weights, test)
    print(f"Test accuracy: {accuracy:.4f}")
    print("Done!")


if __name__ == "__main__":
    main()
