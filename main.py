#!/usr/bin/env python3
"""
Activity Quality Analysis - Main Pipeline
==========================================

Orchestrates the complete analysis of the weight-lifting sensor dataset.

Phases:
    1. EDA - Correlation matrix and class distribution
    2. Preprocessing - Column selection and train/validation split
    3. Training - Cross-validated RandomForestClassifier
    4. Evaluation - Confusion matrix and accuracy on the validation split
    5. Prediction - Classes for the unlabeled test set

Usage:
    # Run complete pipeline
    python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv

    # Run specific phase
    python main.py --phase eda

    # Run with custom config
    python main.py --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

from har_analysis.data_loader import load_config, load_datasets, validate_data, print_data_summary
from har_analysis.eda import generate_eda_report, print_correlation_insights
from har_analysis.preprocessing import preprocess_pipeline, print_preprocessing_summary
from har_analysis.model import train_model, print_model_summary, ActivityClassifier
from har_analysis.evaluation import evaluate_model, print_evaluation_report
from har_analysis.prediction import run_final_prediction, print_prediction_results


def setup_logging(level: str = "INFO", log_to_file: bool = True) -> None:
    """Configure logging for the pipeline."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        handlers.append(
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        )

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


def run_eda(prep_result: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis on the selected predictors.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    label_column = config.get('data', {}).get('label_column', 'classe')
    eda_config = config.get('eda', {})
    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')
    threshold = eda_config.get('correlation_threshold', 0.8)

    df = prep_result['X_train'].copy()
    df[label_column] = prep_result['y_train']

    report = generate_eda_report(
        df,
        label_column=label_column,
        output_dir=output_dir,
        method=eda_config.get('correlation_method', 'pearson'),
        order=eda_config.get('order', 'fpc'),
        correlation_threshold=threshold,
        show_plots=False
    )

    print_correlation_insights(report['high_correlations'], threshold)

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(
    train_df: pd.DataFrame,
    test_df: Optional[pd.DataFrame],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 2: Column selection and splitting.

    Args:
        train_df: Raw training data
        test_df: Raw testing data
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    result = preprocess_pipeline(
        train_df,
        config,
        test_df=test_df,
        save_selector=config.get('output', {}).get('selector_path')
    )

    print_preprocessing_summary(result)

    return result


def run_training(
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> ActivityClassifier:
    """
    Execute Phase 3: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Trained model
    """
    print("\n" + "=" * 70)
    print("PHASE 3: MODEL TRAINING")
    print("=" * 70)

    model_path = config.get('output', {}).get('model_path', 'models/classifier.joblib')

    model = train_model(
        prep_result['X_train'],
        prep_result['y_train'],
        config,
        save_path=model_path
    )

    print_model_summary(model)

    return model


def run_evaluation(
    model: ActivityClassifier,
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Model Evaluation on the validation split.

    Args:
        model: Trained model
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    output_dir = config.get('output', {}).get('reports_path', 'reports/')

    result = evaluate_model(
        model,
        prep_result['X_val'],
        prep_result['y_val'],
        output_dir=output_dir,
        show_plots=False
    )

    print_evaluation_report(result['metrics'])

    return result


def run_final_prediction_phase(
    model: ActivityClassifier,
    prep_result: Dict[str, Any],
    config: Dict[str, Any],
    eval_result: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Execute Phase 5: Predictions for the unlabeled test set.

    Args:
        model: Trained model
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary
        eval_result: Evaluation result with metrics

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: TEST SET PREDICTION")
    print("=" * 70)

    if prep_result['X_test'] is None:
        raise ValueError("No test data available for prediction")

    data_config = config.get('data', {})

    result = run_final_prediction(
        model=model,
        X_test=prep_result['X_test'],
        test_ids=prep_result['test_ids'],
        metrics=eval_result['metrics'] if eval_result else None,
        output_dir=data_config.get('predictions_path', 'data/predictions/'),
        id_column=data_config.get('id_column', 'problem_id'),
        write_answers=config.get('output', {}).get('write_answer_files', True)
    )

    print_prediction_results(result)

    return result


def _load_inputs(
    config: Dict[str, Any],
    train_path: Optional[str],
    test_path: Optional[str]
):
    data_config = config.get('data', {})
    train_path = train_path or data_config.get('train_path', 'data/raw/pml-training.csv')
    test_path = test_path or data_config.get('test_path', 'data/raw/pml-testing.csv')
    label_column = data_config.get('label_column', 'classe')

    print("\n📊 Loading data...")
    train_df, test_df = load_datasets(train_path, test_path, na_values=data_config.get('na_values'))
    print_data_summary(train_df, label_column=label_column)

    validate_data(train_df, label_column=label_column, strict=True)

    return train_df, test_df


def _configure(config_path: str, log_level: Optional[str]) -> Dict[str, Any]:
    config = load_config(config_path)
    logging_config = config.get('logging', {})
    setup_logging(
        log_level or logging_config.get('level', 'INFO'),
        logging_config.get('file', True)
    )
    return config


def run_full_pipeline(
    config_path: str = "config/config.yaml",
    train_path: Optional[str] = None,
    test_path: Optional[str] = None,
    log_level: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the complete 5-phase pipeline.

    Args:
        config_path: Path to configuration file
        train_path: Training CSV (overrides config)
        test_path: Testing CSV (overrides config)
        log_level: Logging level (overrides config)

    Returns:
        Dictionary containing all phase results
    """
    config = _configure(config_path, log_level)

    print("\n" + "=" * 70)
    print("ACTIVITY QUALITY ANALYSIS PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    train_df, test_df = _load_inputs(config, train_path, test_path)

    results = {
        'config': config,
        'data_shape': train_df.shape
    }

    # Column selection comes first so EDA sees the predictors the model uses
    results['preprocessing'] = run_preprocessing(train_df, test_df, config)
    results['eda'] = run_eda(results['preprocessing'], config)
    results['model'] = run_training(results['preprocessing'], config)
    results['evaluation'] = run_evaluation(results['model'], results['preprocessing'], config)
    results['prediction'] = run_final_prediction_phase(
        results['model'], results['preprocessing'], config, results['evaluation']
    )

    overall = results['evaluation']['metrics']['overall']
    predictions = results['prediction']['predictions']

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {train_df.shape[0]} rows × {train_df.shape[1]} columns")
    print(f"  • Predictors used: {len(results['preprocessing']['feature_names'])}")
    print(f"  • CV accuracy: {results['model'].cv_accuracy:.4f}")
    print(f"  • Validation accuracy: {overall['accuracy']:.4f}")
    print(f"  • Out-of-sample error: {overall['out_of_sample_error']:.4f}")
    print(f"  • Test predictions: {''.join(predictions['prediction'])}")
    print(f"  • Output: {results['prediction']['csv_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    config_path: str = "config/config.yaml",
    train_path: Optional[str] = None,
    test_path: Optional[str] = None,
    log_level: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline (with the phases it depends on).

    Args:
        phase: Phase to run ('eda', 'preprocess', 'train', 'evaluate', 'predict')
        config_path: Path to configuration file
        train_path: Training CSV (overrides config)
        test_path: Testing CSV (overrides config)
        log_level: Logging level (overrides config)

    Returns:
        Phase result dictionary
    """
    if phase == 'predict':
        return run_full_pipeline(config_path, train_path, test_path, log_level)

    if phase not in ('eda', 'preprocess', 'train', 'evaluate'):
        raise ValueError(f"Unknown phase: {phase}. Choose from: eda, preprocess, train, evaluate, predict")

    config = _configure(config_path, log_level)

    train_df, test_df = _load_inputs(config, train_path, test_path)
    prep_result = run_preprocessing(train_df, test_df, config)

    if phase == 'eda':
        return run_eda(prep_result, config)

    elif phase == 'preprocess':
        return prep_result

    model = run_training(prep_result, config)
    if phase == 'train':
        return {'model': model, 'preprocessing': prep_result}

    return run_evaluation(model, prep_result, config)


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Exercise quality classification from wearable sensor data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv
  python main.py --phase eda
  python main.py --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--train',
        type=str,
        default=None,
        help='Path to the labelled training CSV (default: from config)'
    )

    parser.add_argument(
        '--test',
        type=str,
        default=None,
        help='Path to the unlabeled testing CSV (default: from config)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['eda', 'preprocess', 'train', 'evaluate', 'predict', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    log_level = 'DEBUG' if args.verbose else None

    try:
        if args.phase == 'all':
            run_full_pipeline(args.config, args.train, args.test, log_level)
        else:
            run_single_phase(args.phase, args.config, args.train, args.test, log_level)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
