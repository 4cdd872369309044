"""
Data Loader Module
==================

Handles CSV ingestion, validation, and basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load CSV data, treating blanks and '#DIV/0!' as missing
    - load_datasets: Load the training and testing files together
    - validate_data: Check label presence and data quality
    - get_data_summary: Generate basic statistics
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import yaml

logger = logging.getLogger(__name__)

# Markers the sensor export uses for missing or undefined readings
DEFAULT_NA_VALUES = ["NA", "", "#DIV/0!"]


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: str,
    na_values: Optional[List[str]] = None,
    expected_columns: Optional[int] = None
) -> pd.DataFrame:
    """
    Load a delimited sensor file with missing-value markers resolved.

    Args:
        file_path: Path to the CSV file
        na_values: Strings to interpret as missing (default: NA, blank, #DIV/0!)
        expected_columns: Expected number of columns (optional validation)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the column count doesn't match expected_columns
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    if na_values is None:
        na_values = DEFAULT_NA_VALUES

    df = pd.read_csv(file_path, na_values=na_values, keep_default_na=True, low_memory=False)
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is not None and df.shape[1] != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns, but found {df.shape[1]}. "
            f"Columns: {list(df.columns)}"
        )

    return df


def load_datasets(
    train_path: str,
    test_path: str,
    na_values: Optional[List[str]] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Load the labelled training file and the unlabeled testing file."""
    train_df = load_data(train_path, na_values=na_values)
    test_df = load_data(test_path, na_values=na_values)
    return train_df, test_df


def validate_data(
    df: pd.DataFrame,
    label_column: str = "classe",
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate the labelled training table.

    Checks:
        - Label column is present and has no missing values
        - At least two classes are represented
        - Share of missing values (reported, not fatal)
        - Duplicate rows (reported, not fatal)

    Args:
        df: DataFrame to validate
        label_column: Name of the class label column
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "issues": [],
        "warnings": []
    }

    # Check 1: Label column
    if label_column not in df.columns:
        issue = f"Label column '{label_column}' not found"
        report["issues"].append(issue)
        logger.error(issue)
    else:
        labels = df[label_column]
        n_missing_labels = int(labels.isnull().sum())
        if n_missing_labels > 0:
            issue = f"Label column '{label_column}' has {n_missing_labels} missing values"
            report["issues"].append(issue)
            logger.error(issue)

        class_counts = labels.value_counts().sort_index()
        report["class_counts"] = {str(k): int(v) for k, v in class_counts.items()}
        if len(class_counts) < 2:
            issue = f"Need at least 2 classes, found {len(class_counts)}"
            report["issues"].append(issue)
            logger.error(issue)

    # Check 2: Missing values
    missing_counts = df.isnull().sum()
    total_missing = int(missing_counts.sum())
    if total_missing > 0:
        missing_pct = (total_missing / (df.shape[0] * df.shape[1])) * 100
        warning = f"Missing values: {total_missing} ({missing_pct:.2f}%)"
        report["warnings"].append(warning)
        report["columns_with_missing"] = int((missing_counts > 0).sum())
        logger.warning(warning)

    # Check 3: Duplicate rows
    duplicates = int(df.duplicated().sum())
    if duplicates > 0:
        warning = f"Duplicate rows found: {duplicates}"
        report["warnings"].append(warning)
        logger.warning(warning)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing summary statistics
    """
    numeric = df.select_dtypes(include=[np.number])
    missing_fraction = df.isnull().mean()

    summary = {
        "shape": df.shape,
        "n_numeric": numeric.shape[1],
        "n_non_numeric": df.shape[1] - numeric.shape[1],
        "memory_usage_mb": df.memory_usage(deep=True).sum() / 1024 / 1024,
        "complete_columns": int((missing_fraction == 0).sum()),
        "mostly_missing_columns": int((missing_fraction > 0.9).sum()),
    }

    return summary


def print_data_summary(df: pd.DataFrame, label_column: str = "classe") -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
        label_column: Name of the class label column
    """
    summary = get_data_summary(df)

    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {summary['memory_usage_mb'] * 1024:.2f} KB")
    print(f"Numeric columns: {summary['n_numeric']}")
    print(f"Non-numeric columns: {summary['n_non_numeric']}")
    print(f"Complete columns: {summary['complete_columns']}")
    print(f"Columns >90% missing: {summary['mostly_missing_columns']}")

    if label_column in df.columns:
        print("\nClass Distribution:")
        print("-" * 40)
        counts = df[label_column].value_counts().sort_index()
        for cls, count in counts.items():
            print(f"  {cls}: {count} ({count / len(df) * 100:.1f}%)")

    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
        print("Configuration loaded successfully!")
        print(f"Label column: {config['data']['label_column']}")
    except FileNotFoundError as e:
        print(f"Config not found: {e}")

    data_path = "data/raw/pml-training.csv"
    if os.path.exists(data_path):
        df = load_data(data_path)
        print_data_summary(df)
        is_valid, report = validate_data(df, strict=False)
        print(f"Validation passed: {is_valid}")
    else:
        print(f"No data file found at {data_path}")
        print("Place the training CSV there to test the data loader.")
