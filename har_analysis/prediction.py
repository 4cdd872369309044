"""
Prediction Module - Phase 5
============================

Predicts exercise quality classes for the unlabeled test set.

Features:
    - Class predictions with per-class probabilities
    - Export predictions to CSV
    - One answer file per test case
    - Prediction report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime

import numpy as np
import pandas as pd

from .model import ActivityClassifier

logger = logging.getLogger(__name__)


def predict_test_set(
    model: ActivityClassifier,
    X_test: pd.DataFrame,
    test_ids: Optional[pd.Series] = None,
    id_column: str = "problem_id"
) -> pd.DataFrame:
    """
    Predict a class for every test case.

    Args:
        model: Trained classifier
        X_test: Selected test features
        test_ids: Identifier per test row (default: 1..n)
        id_column: Name of the identifier column in the output

    Returns:
        DataFrame with the id, the predicted class and one probability
        column per class
    """
    incomplete = X_test.isnull().any(axis=1)
    if incomplete.any():
        bad_cols = X_test.columns[X_test.isnull().any(axis=0)].tolist()
        raise ValueError(
            f"{int(incomplete.sum())} test rows have missing values in predictors: {bad_cols}"
        )

    if test_ids is None:
        test_ids = pd.Series(np.arange(1, len(X_test) + 1))
    if len(test_ids) != len(X_test):
        raise ValueError(f"Got {len(test_ids)} ids for {len(X_test)} test rows")

    predictions = model.predict(X_test)
    probabilities = model.predict_proba(X_test)

    result = pd.DataFrame({
        id_column: np.asarray(test_ids),
        'prediction': [str(p) for p in predictions]
    })
    for k, label in enumerate(model.classes_):
        result[f'prob_{label}'] = probabilities[:, k]

    return result


def export_predictions(
    predictions: pd.DataFrame,
    output_path: str,
    include_timestamp: bool = True
) -> str:
    """
    Export predictions to CSV file.

    Args:
        predictions: DataFrame from predict_test_set
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"test_predictions_{timestamp}.csv"
    else:
        filename = "test_predictions.csv"

    filepath = output_path / filename
    predictions.to_csv(filepath, index=False)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def write_answer_files(
    predictions: pd.DataFrame,
    output_dir: str,
    id_column: str = "problem_id"
) -> List[str]:
    """
    Write one text file per test case containing only its predicted class.

    Files are named ``problem_id_<id>.txt``.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for case_id, label in zip(predictions[id_column], predictions['prediction']):
        filepath = output_dir / f"problem_id_{case_id}.txt"
        filepath.write_text(str(label))
        paths.append(str(filepath))

    logger.info(f"Wrote {len(paths)} answer files to {output_dir}")
    return paths


def generate_prediction_report(
    predictions: pd.DataFrame,
    metrics: Optional[Dict[str, Any]] = None,
    id_column: str = "problem_id",
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate a prediction report.

    Args:
        predictions: DataFrame from predict_test_set
        metrics: Validation metrics (optional)
        id_column: Name of the identifier column
        output_path: Path to save the report (optional)

    Returns:
        Report dictionary
    """
    prob_columns = [c for c in predictions.columns if c.startswith('prob_')]

    report = {
        'generated_at': datetime.now().isoformat(),
        'predictions': {},
        'summary': {}
    }

    for _, row in predictions.iterrows():
        entry = {'predicted_class': row['prediction']}
        if prob_columns:
            entry['confidence'] = float(row[prob_columns].max())
        report['predictions'][str(row[id_column])] = entry

    report['summary'] = {
        'n_predictions': int(len(predictions)),
        'class_counts': {
            str(k): int(v) for k, v in predictions['prediction'].value_counts().sort_index().items()
        }
    }

    if metrics and 'overall' in metrics:
        report['summary']['validation_accuracy'] = metrics['overall']['accuracy']
        report['summary']['expected_out_of_sample_error'] = metrics['overall']['out_of_sample_error']

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_final_prediction(
    model: ActivityClassifier,
    X_test: pd.DataFrame,
    test_ids: Optional[pd.Series] = None,
    metrics: Optional[Dict[str, Any]] = None,
    output_dir: str = "data/predictions/",
    id_column: str = "problem_id",
    write_answers: bool = True
) -> Dict[str, Any]:
    """
    Execute the complete final prediction workflow.

    Args:
        model: Trained classifier
        X_test: Selected test features
        test_ids: Identifier per test row
        metrics: Validation metrics
        output_dir: Directory for output files
        id_column: Name of the identifier column
        write_answers: Whether to write one answer file per test case

    Returns:
        Dictionary containing predictions and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING FINAL PREDICTION (Phase 5)")
    logger.info("=" * 60)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.info(f"Predicting {len(X_test)} test cases...")
    predictions = predict_test_set(model, X_test, test_ids, id_column=id_column)

    csv_path = export_predictions(predictions, str(output_dir))

    answer_files = []
    if write_answers:
        answer_files = write_answer_files(predictions, str(output_dir / "answers"), id_column)

    report_path = output_dir / "prediction_report.json"
    report = generate_prediction_report(
        predictions, metrics, id_column=id_column, output_path=str(report_path)
    )

    result = {
        'predictions': predictions,
        'id_column': id_column,
        'csv_path': csv_path,
        'answer_files': answer_files,
        'report_path': str(report_path),
        'report': report
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Predicted classes: {''.join(predictions['prediction'])}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    predictions = result['predictions']
    id_column = result['id_column']
    prob_columns = [c for c in predictions.columns if c.startswith('prob_')]

    print("\n" + "=" * 50)
    print("TEST SET PREDICTIONS")
    print("=" * 50)
    print(f"\n{'Case':<10} {'Prediction':<12} {'Confidence':<12}")
    print("-" * 50)

    for _, row in predictions.iterrows():
        confidence = row[prob_columns].max() if prob_columns else float('nan')
        print(f"{str(row[id_column]):<10} {row['prediction']:<12} {confidence:<12.3f}")

    print("-" * 50)
    print(f"\nPredictions exported to: {result['csv_path']}")
    print(f"Full report saved to: {result['report_path']}")
    if result['answer_files']:
        print(f"Answer files written: {len(result['answer_files'])}")
    print("=" * 50 + "\n")
