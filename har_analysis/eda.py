"""
Exploratory Data Analysis (EDA) Module - Phase 1
=================================================

Analysis and visualization of the selected sensor predictors.

Functions:
    - plot_correlation_matrix: Correlation heatmap, optionally FPC-ordered
    - find_high_correlations: Strongly correlated predictor pairs
    - plot_class_distribution: Class frequency bar chart
    - plot_feature_boxplots: Per-class box plots of separating features
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def first_principal_component_order(corr_matrix: pd.DataFrame) -> List[str]:
    """
    Order variables by their loading on the first principal component.

    Args:
        corr_matrix: Square correlation matrix

    Returns:
        Column names sorted by first-component loading
    """
    values = corr_matrix.fillna(0).values
    eigenvalues, eigenvectors = np.linalg.eigh(values)
    loadings = eigenvectors[:, np.argmax(eigenvalues)]

    # Sign of an eigenvector is arbitrary
    if loadings.sum() < 0:
        loadings = -loadings

    order = np.argsort(loadings)[::-1]
    return [corr_matrix.columns[i] for i in order]


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    order: Optional[str] = 'fpc',
    figsize: Tuple[int, int] = (14, 12),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical predictors
        method: Correlation method ('pearson', 'spearman', 'kendall')
        order: 'fpc' to sort by first principal component, None for column order
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    if order == 'fpc' and len(corr_matrix) > 1:
        ordered = first_principal_component_order(corr_matrix)
        corr_matrix = corr_matrix.loc[ordered, ordered]

    fig, ax = plt.subplots(figsize=figsize)

    # Annotations are unreadable beyond a couple of dozen predictors
    annotate = len(corr_matrix) <= 20

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=annotate,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.3,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.tick_params(axis='both', labelsize=7)
    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def find_high_correlations(
    corr_matrix: pd.DataFrame,
    threshold: float = 0.8
) -> List[Dict[str, Any]]:
    """
    List predictor pairs whose absolute correlation reaches the threshold.

    Args:
        corr_matrix: Correlation matrix DataFrame
        threshold: Minimum |r| to report

    Returns:
        List of {'col1', 'col2', 'correlation'} sorted by |r| descending
    """
    pairs = []
    columns = corr_matrix.columns
    for i in range(len(columns)):
        for j in range(i + 1, len(columns)):
            corr_val = corr_matrix.iloc[i, j]
            if pd.notnull(corr_val) and abs(corr_val) >= threshold:
                pairs.append({
                    "col1": columns[i],
                    "col2": columns[j],
                    "correlation": float(corr_val)
                })

    return sorted(pairs, key=lambda x: abs(x["correlation"]), reverse=True)


def plot_class_distribution(
    y: pd.Series,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of class frequencies.

    Args:
        y: Class labels
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    counts = y.value_counts().sort_index()

    fig, ax = plt.subplots(figsize=figsize)
    bars = ax.bar(counts.index.astype(str), counts.values, color='steelblue', alpha=0.8)

    for bar, count in zip(bars, counts.values):
        ax.text(bar.get_x() + bar.get_width() / 2, bar.get_height(),
                f'{count}', ha='center', va='bottom', fontsize=9)

    ax.set_xlabel('Class')
    ax.set_ylabel('Count')
    ax.set_title('Class Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Class distribution plot saved to {save_path}")

    return fig


def rank_features_by_class_separation(
    df: pd.DataFrame,
    label_column: str
) -> pd.Series:
    """
    Rank predictors by their one-way ANOVA F statistic across classes.

    Args:
        df: DataFrame holding predictors and the label
        label_column: Name of the class label column

    Returns:
        F statistics indexed by column, descending
    """
    groups = [g for _, g in df.groupby(label_column)]
    scores = {}

    for col in df.columns:
        if col == label_column or not pd.api.types.is_numeric_dtype(df[col]):
            continue
        samples = [g[col].dropna().values for g in groups]
        samples = [s for s in samples if len(s) > 0]
        if len(samples) < 2:
            continue
        f_stat, _ = stats.f_oneway(*samples)
        scores[col] = float(f_stat) if np.isfinite(f_stat) else 0.0

    return pd.Series(scores, dtype=float).sort_values(ascending=False)


def plot_feature_boxplots(
    df: pd.DataFrame,
    label_column: str,
    features: Optional[List[str]] = None,
    top_n: int = 6,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Per-class box plots for a handful of predictors.

    Args:
        df: DataFrame holding predictors and the label
        label_column: Name of the class label column
        features: Predictors to plot (default: the top_n most class-separating)
        top_n: Number of predictors when features is None
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    if features is None:
        features = rank_features_by_class_separation(df, label_column).index[:top_n].tolist()

    n_cols = len(features)
    n_rows = max(1, (n_cols + 1) // 2)

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()
    order = sorted(df[label_column].astype(str).unique())

    for idx, col in enumerate(features):
        ax = axes[idx]
        sns.boxplot(x=df[label_column].astype(str), y=df[col], order=order, ax=ax)
        ax.set_title(f'{col}', fontsize=10, fontweight='bold')
        ax.set_xlabel('Class')
        ax.set_ylabel('')

    # Hide unused subplots
    for idx in range(len(features), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Predictors by Class', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature box plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    label_column: str = "classe",
    output_dir: str = "reports/figures/",
    method: str = 'pearson',
    order: Optional[str] = 'fpc',
    correlation_threshold: float = 0.8,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: Selected predictors plus the label column
        label_column: Name of the class label column
        output_dir: Directory to save figures
        method: Correlation method
        order: Correlation matrix ordering ('fpc' or None)
        correlation_threshold: |r| above which pairs are reported
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    predictors = df.drop(columns=[label_column], errors='ignore')

    report = {
        "data_shape": df.shape,
        "columns": list(predictors.columns),
        "figures": [],
        "correlation_matrix": None,
        "high_correlations": [],
        "class_counts": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS (Phase 1)")
    logger.info("=" * 60)

    # 1. Class distribution
    if label_column in df.columns:
        logger.info("Plotting class distribution...")
        plot_class_distribution(
            df[label_column],
            save_path=str(output_dir / "01_class_distribution.png")
        )
        report["figures"].append("01_class_distribution.png")
        report["class_counts"] = {
            str(k): int(v) for k, v in df[label_column].value_counts().sort_index().items()
        }

    # 2. Correlation matrix
    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        predictors,
        method=method,
        order=order,
        save_path=str(output_dir / "02_correlation_matrix.png")
    )
    report["figures"].append("02_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()
    report["high_correlations"] = find_high_correlations(corr_matrix, correlation_threshold)
    logger.info(
        f"{len(report['high_correlations'])} predictor pairs with |r| >= {correlation_threshold}"
    )

    # 3. Per-class box plots
    if label_column in df.columns:
        logger.info("Creating per-class box plots...")
        plot_feature_boxplots(
            df,
            label_column,
            save_path=str(output_dir / "03_feature_boxplots.png")
        )
        report["figures"].append("03_feature_boxplots.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(
    pairs: List[Dict[str, Any]],
    threshold: float = 0.8,
    limit: int = 20
) -> None:
    """
    Print strongly correlated predictor pairs.

    Args:
        pairs: Output of find_high_correlations
        threshold: Threshold used to select the pairs
        limit: Maximum number of pairs to print
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    if pairs:
        print(f"\nStrong correlations (|r| >= {threshold}): {len(pairs)} pairs")
        for item in pairs[:limit]:
            direction = "positive" if item["correlation"] > 0 else "negative"
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f} ({direction})")
        if len(pairs) > limit:
            print(f"  ... and {len(pairs) - limit} more")

        print("\nInterpretation:")
        print("  - Correlated predictors carry overlapping information")
        print("  - Random forests tolerate this; no predictors are removed here")
    else:
        print(f"\nNo strong correlations found (|r| >= {threshold})")

    print("=" * 50 + "\n")
