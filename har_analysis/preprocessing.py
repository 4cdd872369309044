"""
Data Preprocessing Module - Phase 2
====================================

Selects predictor columns and prepares the train/validation split.

Functions:
    - near_zero_variance: Frequency-ratio / percent-unique diagnostics
    - FeatureSelector: Drops identifier, sparse, irrelevant-axis and
      near-constant columns, learned on the training table
    - split_train_validation: Stratified train/validation split
    - preprocess_pipeline: Full preprocessing for training and test tables
"""

import logging
import re
from pathlib import Path
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np
from sklearn.model_selection import train_test_split
import joblib

logger = logging.getLogger(__name__)

DEFAULT_IDENTIFIER_PATTERNS = [
    r"^X$",
    r"^Unnamed",
    r"user_name",
    r"timestamp",
    r"window",
    r"problem_id",
]

# Lateral axis of the inertial sensors
DEFAULT_IRRELEVANT_PATTERNS = [
    r"^(gyros|accel|magnet)_(belt|arm|forearm|dumbbell)_x$",
]

DROP_REASONS = ["identifier", "sparse", "irrelevant", "non_numeric", "near_zero_variance"]


def near_zero_variance(
    df: pd.DataFrame,
    freq_cut: float = 95 / 5,
    unique_cut: float = 10.0
) -> pd.DataFrame:
    """
    Diagnose predictors that are constant or nearly constant.

    A column is flagged when it has a single distinct value, or when the
    most common value is more than ``freq_cut`` times as frequent as the
    second most common one while distinct values make up at most
    ``unique_cut`` percent of the rows.

    Args:
        df: DataFrame of candidate predictors
        freq_cut: Threshold on the most/second-most frequent value ratio
        unique_cut: Threshold on the percentage of distinct values

    Returns:
        DataFrame indexed by column with freq_ratio, percent_unique,
        zero_var and nzv
    """
    rows = []
    n_rows = len(df)

    for col in df.columns:
        counts = df[col].value_counts(dropna=True)

        if len(counts) < 2:
            freq_ratio = 0.0
        else:
            freq_ratio = float(counts.iloc[0] / counts.iloc[1])

        percent_unique = 100.0 * len(counts) / n_rows if n_rows else 0.0
        zero_var = len(counts) <= 1
        nzv = zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut)

        rows.append({
            'column': col,
            'freq_ratio': freq_ratio,
            'percent_unique': percent_unique,
            'zero_var': bool(zero_var),
            'nzv': bool(nzv)
        })

    table = pd.DataFrame(rows, columns=['column', 'freq_ratio', 'percent_unique', 'zero_var', 'nzv'])
    return table.set_index('column')


def _matching_columns(columns: List[str], patterns: List[str]) -> List[str]:
    compiled = [re.compile(p) for p in patterns]
    return [col for col in columns if any(rx.search(col) for rx in compiled)]


class FeatureSelector:
    """
    Column selection learned on the training table.

    The selection is fitted once and then applied unchanged to every other
    table (validation rows, the unlabeled test set) so that the model always
    sees the same predictors in the same order.
    """

    def __init__(
        self,
        identifier_patterns: Optional[List[str]] = None,
        max_missing_fraction: float = 0.9,
        irrelevant_patterns: Optional[List[str]] = None,
        drop_near_zero_variance: bool = False,
        freq_cut: float = 95 / 5,
        unique_cut: float = 10.0,
        label_column: str = "classe"
    ):
        """
        Initialize the selector.

        Args:
            identifier_patterns: Regexes matching row ids, subject and timestamps
            max_missing_fraction: Columns missing more than this share are dropped
            irrelevant_patterns: Regexes matching physically irrelevant axes
            drop_near_zero_variance: Also drop columns flagged as near-zero-variance
            freq_cut: Frequency ratio cut-off for the near-zero-variance check
            unique_cut: Percent-unique cut-off for the near-zero-variance check
            label_column: Name of the class label, never dropped
        """
        self.identifier_patterns = (
            list(DEFAULT_IDENTIFIER_PATTERNS if identifier_patterns is None else identifier_patterns)
        )
        self.max_missing_fraction = max_missing_fraction
        self.irrelevant_patterns = (
            list(DEFAULT_IRRELEVANT_PATTERNS if irrelevant_patterns is None else irrelevant_patterns)
        )
        self.drop_near_zero_variance = drop_near_zero_variance
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut
        self.label_column = label_column

        self.feature_columns: Optional[List[str]] = None
        self.dropped_columns: Dict[str, List[str]] = {reason: [] for reason in DROP_REASONS}
        self.nzv_table: Optional[pd.DataFrame] = None
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'FeatureSelector':
        """
        Learn which columns to keep from the training table.

        Args:
            df: Labelled training DataFrame

        Returns:
            Self for method chaining
        """
        self.dropped_columns = {reason: [] for reason in DROP_REASONS}
        remaining = [c for c in df.columns if c != self.label_column]

        # 1. Identifiers and timestamps
        identifiers = _matching_columns(remaining, self.identifier_patterns)
        self.dropped_columns['identifier'] = identifiers
        remaining = [c for c in remaining if c not in identifiers]
        logger.info(f"Dropping {len(identifiers)} identifier/timestamp columns")

        # 2. Columns dominated by missing or blank values
        missing_fraction = df[remaining].isnull().mean()
        sparse = missing_fraction[missing_fraction > self.max_missing_fraction].index.tolist()
        self.dropped_columns['sparse'] = sparse
        remaining = [c for c in remaining if c not in sparse]
        logger.info(
            f"Dropping {len(sparse)} columns with >{self.max_missing_fraction:.0%} missing values"
        )

        # 3. Physically irrelevant axes
        irrelevant = _matching_columns(remaining, self.irrelevant_patterns)
        self.dropped_columns['irrelevant'] = irrelevant
        remaining = [c for c in remaining if c not in irrelevant]
        logger.info(f"Dropping {len(irrelevant)} irrelevant-axis columns")

        # 4. Anything still non-numeric cannot be fed to the forest
        non_numeric = [c for c in remaining if not pd.api.types.is_numeric_dtype(df[c])]
        if non_numeric:
            logger.warning(f"Dropping non-numeric columns: {non_numeric}")
        self.dropped_columns['non_numeric'] = non_numeric
        remaining = [c for c in remaining if c not in non_numeric]

        # 5. Near-zero-variance check
        self.nzv_table = near_zero_variance(
            df[remaining], freq_cut=self.freq_cut, unique_cut=self.unique_cut
        )
        flagged = self.nzv_table.index[self.nzv_table['nzv']].tolist()
        logger.info(f"Near-zero-variance predictors: {len(flagged)} {flagged}")
        if self.drop_near_zero_variance:
            self.dropped_columns['near_zero_variance'] = flagged
            remaining = [c for c in remaining if c not in flagged]

        if not remaining:
            raise ValueError("No predictor columns left after column selection")

        self.feature_columns = remaining
        self._is_fitted = True
        logger.info(f"Kept {len(self.feature_columns)} predictor columns")
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Keep only the selected predictors (and the label, if present).

        Args:
            df: DataFrame to transform

        Returns:
            DataFrame restricted to the selected columns
        """
        if not self._is_fitted:
            raise ValueError("FeatureSelector must be fitted before transform. Call fit() first.")

        missing = [c for c in self.feature_columns if c not in df.columns]
        if missing:
            raise ValueError(f"Columns missing from input: {missing}")

        columns = list(self.feature_columns)
        if self.label_column in df.columns:
            columns.append(self.label_column)

        return df[columns].copy()

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        self.fit(df)
        return self.transform(df)

    def get_dropped_columns(self) -> List[str]:
        """All dropped columns, in the order they were removed."""
        dropped = []
        for reason in DROP_REASONS:
            dropped.extend(self.dropped_columns[reason])
        return dropped

    def save(self, filepath: str) -> None:
        """
        Save the selector state to disk.

        Args:
            filepath: Path to save the selector
        """
        state = {
            'identifier_patterns': self.identifier_patterns,
            'max_missing_fraction': self.max_missing_fraction,
            'irrelevant_patterns': self.irrelevant_patterns,
            'drop_near_zero_variance': self.drop_near_zero_variance,
            'freq_cut': self.freq_cut,
            'unique_cut': self.unique_cut,
            'label_column': self.label_column,
            'feature_columns': self.feature_columns,
            'dropped_columns': self.dropped_columns,
            'nzv_table': self.nzv_table,
            '_is_fitted': self._is_fitted
        }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Feature selector saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'FeatureSelector':
        """
        Load a selector from disk.

        Args:
            filepath: Path to the saved selector

        Returns:
            Loaded FeatureSelector instance
        """
        state = joblib.load(filepath)

        selector = cls(
            identifier_patterns=state['identifier_patterns'],
            max_missing_fraction=state['max_missing_fraction'],
            irrelevant_patterns=state['irrelevant_patterns'],
            drop_near_zero_variance=state['drop_near_zero_variance'],
            freq_cut=state['freq_cut'],
            unique_cut=state['unique_cut'],
            label_column=state['label_column']
        )
        selector.feature_columns = state['feature_columns']
        selector.dropped_columns = state['dropped_columns']
        selector.nzv_table = state['nzv_table']
        selector._is_fitted = state['_is_fitted']

        logger.info(f"Feature selector loaded from {filepath}")
        return selector


def split_train_validation(
    X: pd.DataFrame,
    y: pd.Series,
    train_split: float = 0.7,
    random_state: int = 42
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """
    Split labelled data into train and validation sets, stratified by class.

    Args:
        X: Feature DataFrame
        y: Class labels
        train_split: Fraction of rows for training
        random_state: Random seed for reproducibility

    Returns:
        Tuple of (X_train, X_val, y_train, y_val)
    """
    X_train, X_val, y_train, y_val = train_test_split(
        X, y,
        train_size=train_split,
        stratify=y,
        random_state=random_state
    )

    logger.info(
        f"Train/Validation split: {len(X_train)} train samples, {len(X_val)} validation samples"
    )

    return X_train, X_val, y_train, y_val


def build_selector(config: Dict[str, Any]) -> FeatureSelector:
    """Create a FeatureSelector from the 'preprocessing' config section."""
    prep_config = config.get('preprocessing', {})
    nzv_config = prep_config.get('near_zero_variance', {})

    return FeatureSelector(
        identifier_patterns=prep_config.get('identifier_patterns'),
        max_missing_fraction=prep_config.get('max_missing_fraction', 0.9),
        irrelevant_patterns=prep_config.get('irrelevant_patterns'),
        drop_near_zero_variance=nzv_config.get('drop', False),
        freq_cut=nzv_config.get('freq_cut', 95 / 5),
        unique_cut=nzv_config.get('unique_cut', 10.0),
        label_column=config.get('data', {}).get('label_column', 'classe')
    )


def preprocess_pipeline(
    train_df: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None,
    test_df: Optional[pd.DataFrame] = None,
    save_selector: Optional[str] = None
) -> Dict[str, Any]:
    """
    Complete preprocessing for the training table and, optionally, the test table.

    Args:
        train_df: Raw labelled DataFrame
        config: Configuration dictionary
        test_df: Raw unlabeled DataFrame (optional)
        save_selector: Path to save the fitted selector

    Returns:
        Dictionary containing:
            - X_train, X_val, y_train, y_val: Split datasets
            - X_test, test_ids: Selected test features and their ids (or None)
            - selector: Fitted FeatureSelector
            - feature_names: Names of selected predictors
            - nzv_table: Near-zero-variance diagnostics
    """
    config = config or {}
    data_config = config.get('data', {})
    prep_config = config.get('preprocessing', {})
    label_column = data_config.get('label_column', 'classe')
    id_column = data_config.get('id_column', 'problem_id')

    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING (Phase 2)")
    logger.info("=" * 60)

    if label_column not in train_df.columns:
        raise ValueError(f"Label column '{label_column}' not found in training data")

    selector = build_selector(config)
    selected = selector.fit_transform(train_df)

    n_before = len(selected)
    selected = selected.dropna()
    if len(selected) < n_before:
        logger.warning(f"Dropped {n_before - len(selected)} incomplete training rows")

    X = selected[selector.feature_columns]
    y = selected[label_column].astype(str)

    X_train, X_val, y_train, y_val = split_train_validation(
        X, y,
        train_split=prep_config.get('train_split', 0.7),
        random_state=prep_config.get('random_state', 42)
    )

    X_test = None
    test_ids = None
    if test_df is not None:
        X_test = selector.transform(test_df)[selector.feature_columns]
        if id_column in test_df.columns:
            test_ids = test_df[id_column].reset_index(drop=True)
        else:
            test_ids = pd.Series(np.arange(1, len(test_df) + 1), name=id_column)

    if save_selector:
        selector.save(save_selector)

    result = {
        'X_train': X_train,
        'X_val': X_val,
        'y_train': y_train,
        'y_val': y_val,
        'X_test': X_test,
        'test_ids': test_ids,
        'selector': selector,
        'feature_names': list(selector.feature_columns),
        'nzv_table': selector.nzv_table
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training samples: {len(X_train)}")
    logger.info(f"  Validation samples: {len(X_val)}")
    logger.info(f"  Predictors: {X_train.shape[1]}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    selector = result['selector']

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    for reason in DROP_REASONS:
        print(f"Dropped ({reason}): {len(selector.dropped_columns[reason])}")
    print(f"Predictors kept: {len(result['feature_names'])}")
    print(f"\nTraining samples: {len(result['X_train'])}")
    print(f"Validation samples: {len(result['X_val'])}")
    if result['X_test'] is not None:
        print(f"Test samples: {len(result['X_test'])}")

    nzv = result['nzv_table']
    if nzv is not None:
        flagged = nzv[nzv['nzv']]
        print(f"\nNear-zero-variance predictors: {len(flagged)}")
        if not flagged.empty:
            print(flagged.round(3).to_string())
    print("=" * 50 + "\n")
