"""
Model Evaluation Module - Phase 4
==================================

Evaluation metrics and visualizations on the held-out validation split.

Features:
    - Accuracy with exact binomial confidence interval
    - No-information rate and Cohen's kappa
    - Confusion matrix and per-class statistics
    - Feature importance and cross-validation plots
    - Evaluation report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from sklearn.metrics import accuracy_score, cohen_kappa_score, confusion_matrix

from .model import ActivityClassifier

logger = logging.getLogger(__name__)


def _ratio(numerator: float, denominator: float) -> float:
    return float(numerator / denominator) if denominator else float('nan')


def to_json_compatible(value: Any) -> Any:
    """Replace NaN floats with None so the result is strict JSON."""
    if isinstance(value, dict):
        return {k: to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(v) for v in value]
    if isinstance(value, float) and np.isnan(value):
        return None
    return value


def accuracy_confidence_interval(
    n_correct: int,
    n_total: int,
    confidence_level: float = 0.95
) -> Tuple[float, float]:
    """
    Exact (Clopper-Pearson) confidence interval for an accuracy.

    Args:
        n_correct: Number of correct predictions
        n_total: Number of predictions
        confidence_level: Two-sided confidence level

    Returns:
        Tuple of (lower, upper)
    """
    alpha = 1.0 - confidence_level
    lower = 0.0 if n_correct == 0 else stats.beta.ppf(alpha / 2, n_correct, n_total - n_correct + 1)
    upper = 1.0 if n_correct == n_total else stats.beta.ppf(1 - alpha / 2, n_correct + 1, n_total - n_correct)
    return float(lower), float(upper)


def per_class_statistics(cm: np.ndarray, labels: List[str]) -> Dict[str, Dict[str, float]]:
    """
    One-vs-rest statistics for each class from a confusion matrix.

    Rows of ``cm`` are true classes, columns are predicted classes.
    """
    total = cm.sum()
    result = {}

    for k, label in enumerate(labels):
        tp = cm[k, k]
        fn = cm[k, :].sum() - tp
        fp = cm[:, k].sum() - tp
        tn = total - tp - fn - fp

        sensitivity = _ratio(tp, tp + fn)
        specificity = _ratio(tn, tn + fp)

        result[label] = {
            'sensitivity': sensitivity,
            'specificity': specificity,
            'pos_pred_value': _ratio(tp, tp + fp),
            'neg_pred_value': _ratio(tn, tn + fn),
            'prevalence': _ratio(tp + fn, total),
            'detection_rate': _ratio(tp, total),
            'balanced_accuracy': (sensitivity + specificity) / 2,
            'support': int(tp + fn)
        }

    return result


def calculate_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    labels: Optional[List[str]] = None,
    confidence_level: float = 0.95
) -> Dict[str, Any]:
    """
    Calculate classification metrics for the validation split.

    Args:
        y_true: True class labels
        y_pred: Predicted class labels
        labels: Class order for the confusion matrix (default: sorted union)
        confidence_level: Confidence level for the accuracy interval

    Returns:
        Dictionary with 'overall', 'per_class' and 'confusion_matrix'
    """
    y_true = np.asarray(y_true).astype(str)
    y_pred = np.asarray(y_pred).astype(str)

    if len(y_true) != len(y_pred):
        raise ValueError(f"Length mismatch: {len(y_true)} true vs {len(y_pred)} predicted")
    if len(y_true) == 0:
        raise ValueError("Cannot evaluate an empty prediction set")

    if labels is None:
        labels = sorted(set(y_true) | set(y_pred))
    labels = [str(label) for label in labels]

    unknown = sorted((set(y_true) | set(y_pred)) - set(labels))
    if unknown:
        raise ValueError(f"Labels not in the class list {labels}: {unknown}")

    cm = confusion_matrix(y_true, y_pred, labels=labels)
    n_total = int(len(y_true))
    n_correct = int(np.trace(cm))
    accuracy = float(accuracy_score(y_true, y_pred))
    ci_lower, ci_upper = accuracy_confidence_interval(n_correct, n_total, confidence_level)

    # Accuracy of always predicting the largest class
    no_information_rate = float(cm.sum(axis=1).max() / n_total)
    nir_p_value = float(
        stats.binomtest(n_correct, n_total, no_information_rate, alternative='greater').pvalue
    )

    metrics = {
        'overall': {
            'accuracy': accuracy,
            'accuracy_ci_lower': ci_lower,
            'accuracy_ci_upper': ci_upper,
            'confidence_level': confidence_level,
            'out_of_sample_error': 1.0 - accuracy,
            'kappa': float(cohen_kappa_score(y_true, y_pred, labels=labels)),
            'no_information_rate': no_information_rate,
            'p_value_acc_greater_nir': nir_p_value,
            'n_samples': n_total,
            'n_classes': len(labels)
        },
        'labels': labels,
        'confusion_matrix': cm.tolist(),
        'per_class': per_class_statistics(cm, labels)
    }

    return metrics


def plot_confusion_matrix(
    metrics: Dict[str, Any],
    normalize: bool = False,
    figsize: Tuple[int, int] = (8, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Heatmap of the confusion matrix.

    Args:
        metrics: Metrics dictionary from calculate_metrics
        normalize: Show row-normalized rates instead of counts
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    labels = metrics['labels']
    cm = np.array(metrics['confusion_matrix'], dtype=float)

    if normalize:
        row_sums = cm.sum(axis=1, keepdims=True)
        cm = np.divide(cm, row_sums, out=np.zeros_like(cm), where=row_sums > 0)

    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(
        cm,
        annot=True,
        fmt='.2f' if normalize else '.0f',
        cmap='Blues',
        xticklabels=labels,
        yticklabels=labels,
        cbar_kws={"label": "Rate" if normalize else "Count"},
        ax=ax
    )

    accuracy = metrics['overall']['accuracy']
    ax.set_xlabel('Predicted')
    ax.set_ylabel('Actual')
    ax.set_title(f'Confusion Matrix (Accuracy={accuracy:.4f})', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def plot_feature_importance(
    importances: pd.Series,
    top_n: int = 20,
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Horizontal bar chart of the most important predictors.

    Args:
        importances: Importance per feature, sorted descending
        top_n: Number of predictors to show
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    top = importances.head(top_n)[::-1]

    fig, ax = plt.subplots(figsize=figsize)
    ax.barh(top.index, top.values, color='steelblue', alpha=0.8)
    ax.set_xlabel('Mean Decrease in Impurity')
    ax.set_title(f'Top {len(top)} Predictors', fontsize=14, fontweight='bold')
    ax.tick_params(axis='y', labelsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature importance plot saved to {save_path}")

    return fig


def plot_cv_results(
    cv_results: pd.DataFrame,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Cross-validated accuracy against the number of predictors tried per split.

    Args:
        cv_results: DataFrame from ActivityClassifier.get_cv_results
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    results = cv_results.sort_values('max_features')

    fig, ax = plt.subplots(figsize=figsize)
    ax.errorbar(
        results['max_features'],
        results['mean_accuracy'],
        yerr=results['std_accuracy'],
        marker='o',
        capsize=4
    )
    ax.set_xlabel('Randomly Selected Predictors (max_features)')
    ax.set_ylabel('Accuracy (Cross-Validation)')
    ax.set_title('Cross-Validation Tuning', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Cross-validation plot saved to {save_path}")

    return fig


def evaluate_model(
    model: ActivityClassifier,
    X_val: pd.DataFrame,
    y_val: pd.Series,
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run complete model evaluation on the validation split.

    Args:
        model: Trained classifier
        X_val: Validation features
        y_val: Validation labels
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION (Phase 4)")
    logger.info("=" * 60)

    y_pred = model.predict(X_val)

    logger.info("Calculating evaluation metrics...")
    metrics = calculate_metrics(
        y_val, y_pred, labels=[str(c) for c in model.classes_]
    )
    metrics['cross_validation'] = {
        'cv_accuracy': model.cv_accuracy,
        'cv_error': model.cv_error,
        'best_params': model.training_info.get('best_params', {})
    }

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump(to_json_compatible(metrics), f, indent=2, allow_nan=False)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []

    logger.info("Generating confusion matrix...")
    plot_confusion_matrix(
        metrics,
        save_path=str(figures_dir / "eval_confusion_matrix.png")
    )
    figures.append("eval_confusion_matrix.png")

    logger.info("Generating feature importance plot...")
    plot_feature_importance(
        model.get_feature_importances(),
        save_path=str(figures_dir / "eval_feature_importance.png")
    )
    figures.append("eval_feature_importance.png")

    logger.info("Generating cross-validation plot...")
    plot_cv_results(
        model.get_cv_results(),
        save_path=str(figures_dir / "eval_cv_results.png")
    )
    figures.append("eval_cv_results.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'metrics': metrics,
        'predictions': y_pred,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    logger.info(f"  Accuracy: {metrics['overall']['accuracy']:.6f}")
    logger.info(f"  Kappa: {metrics['overall']['kappa']:.6f}")
    logger.info(f"  Out-of-sample error: {metrics['overall']['out_of_sample_error']:.6f}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(metrics: Dict[str, Any]) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        metrics: Metrics dictionary from calculate_metrics
    """
    overall = metrics['overall']
    labels = metrics['labels']

    print("\n" + "=" * 70)
    print("MODEL EVALUATION REPORT")
    print("=" * 70)

    print("\nConfusion Matrix (rows: actual, columns: predicted):")
    cm = pd.DataFrame(metrics['confusion_matrix'], index=labels, columns=labels)
    print(cm.to_string())

    level = int(overall['confidence_level'] * 100)
    print("\nOverall Statistics:")
    print(f"  • Accuracy: {overall['accuracy']:.4f}")
    print(f"  • {level}% CI: ({overall['accuracy_ci_lower']:.4f}, {overall['accuracy_ci_upper']:.4f})")
    print(f"  • No Information Rate: {overall['no_information_rate']:.4f}")
    print(f"  • P-Value [Acc > NIR]: {overall['p_value_acc_greater_nir']:.3g}")
    print(f"  • Kappa: {overall['kappa']:.4f}")
    print(f"  • Out-of-sample error: {overall['out_of_sample_error']:.4f}")

    print("\nStatistics by Class:")
    print("-" * 70)
    print(f"{'Class':<8} {'Sensitivity':<13} {'Specificity':<13} {'Pos Pred':<11} {'Neg Pred':<11} {'Bal Acc':<10}")
    print("-" * 70)
    for label in labels:
        s = metrics['per_class'][label]
        print(f"{label:<8} {s['sensitivity']:<13.4f} {s['specificity']:<13.4f} "
              f"{s['pos_pred_value']:<11.4f} {s['neg_pred_value']:<11.4f} {s['balanced_accuracy']:<10.4f}")
    print("-" * 70)

    if 'cross_validation' in metrics:
        cv = metrics['cross_validation']
        print(f"\nCross-validated accuracy: {cv['cv_accuracy']:.4f} "
              f"(estimated error {cv['cv_error']:.4f})")

    print("=" * 70 + "\n")
