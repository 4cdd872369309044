"""
Model Training Module - Phase 3
================================

Trains a RandomForestClassifier tuned by k-fold cross-validation.

Features:
    - Stratified k-fold cross-validation over max_features
    - Refit of the best configuration on the full training split
    - Hyperparameter configuration via config file
    - Model persistence (save/load)
    - Training progress logging
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.ensemble import RandomForestClassifier
from sklearn.model_selection import GridSearchCV, StratifiedKFold

logger = logging.getLogger(__name__)


def default_max_features_grid(n_features: int, tune_length: int = 3) -> List[int]:
    """
    Evenly spaced candidate values for the number of predictors tried per split.

    Args:
        n_features: Number of predictors
        tune_length: Number of candidates

    Returns:
        Sorted, de-duplicated list of integers in [1, n_features]
    """
    if n_features < 1:
        raise ValueError("n_features must be at least 1")
    if n_features < 2:
        return [n_features]

    grid = np.floor(np.linspace(2, n_features, tune_length)).astype(int)
    return sorted({int(min(max(v, 1), n_features)) for v in grid})


class ActivityClassifier:
    """
    Random forest classifier for exercise execution quality.

    Wraps GridSearchCV so that the number of predictors sampled at each
    split is chosen by cross-validated accuracy before the final refit.
    """

    def __init__(
        self,
        n_estimators: int = 500,
        max_features_grid: Optional[List[int]] = None,
        tune_length: int = 3,
        cv_folds: int = 5,
        random_state: int = 42,
        n_jobs: int = -1,
        oob_score: bool = True
    ):
        """
        Initialize the classifier with hyperparameters.

        Args:
            n_estimators: Number of trees in the forest
            max_features_grid: Candidate max_features values (None = derived from data)
            tune_length: Number of candidates when the grid is derived
            cv_folds: Number of cross-validation folds
            random_state: Random seed for reproducibility
            n_jobs: Parallel jobs for the cross-validation (-1 for all cores)
            oob_score: Whether to compute the out-of-bag accuracy
        """
        self.n_estimators = n_estimators
        self.max_features_grid = max_features_grid
        self.tune_length = tune_length
        self.cv_folds = cv_folds
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.oob_score = oob_score

        self.search: Optional[GridSearchCV] = None
        self.feature_names_: Optional[List[str]] = None
        self.classes_: Optional[np.ndarray] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def _create_base_estimator(self) -> RandomForestClassifier:
        """Create the base RandomForestClassifier."""
        return RandomForestClassifier(
            n_estimators=self.n_estimators,
            oob_score=self.oob_score,
            random_state=self.random_state,
            n_jobs=1
        )

    @property
    def best_estimator_(self) -> RandomForestClassifier:
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")
        return self.search.best_estimator_

    @property
    def cv_accuracy(self) -> float:
        """Mean cross-validated accuracy of the selected configuration."""
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")
        return float(self.search.best_score_)

    @property
    def cv_error(self) -> float:
        """Expected out-of-sample error estimated by cross-validation."""
        return 1.0 - self.cv_accuracy

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'ActivityClassifier':
        """
        Tune and train the forest on the provided data.

        Args:
            X: Feature DataFrame of shape (n_samples, n_features)
            y: Class labels

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info("STARTING MODEL TRAINING (Phase 3)")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, y={len(y)}")

        self.feature_names_ = list(X.columns)
        grid = self.max_features_grid or default_max_features_grid(
            X.shape[1], self.tune_length
        )
        grid = [int(v) for v in grid if 1 <= int(v) <= X.shape[1]]
        if not grid:
            raise ValueError(f"No usable max_features values for {X.shape[1]} predictors")

        logger.info(f"Hyperparameters:")
        logger.info(f"  - n_estimators: {self.n_estimators}")
        logger.info(f"  - max_features grid: {grid}")
        logger.info(f"  - cv_folds: {self.cv_folds}")

        cv = StratifiedKFold(
            n_splits=self.cv_folds, shuffle=True, random_state=self.random_state
        )
        self.search = GridSearchCV(
            self._create_base_estimator(),
            param_grid={'max_features': grid},
            scoring='accuracy',
            cv=cv,
            refit=True,
            n_jobs=self.n_jobs,
            return_train_score=False
        )

        logger.info(f"Running {self.cv_folds}-fold cross-validation over {len(grid)} candidates...")
        self.search.fit(X, y)
        self.classes_ = self.search.best_estimator_.classes_

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'classes': [str(c) for c in self.classes_],
            'trained_at': end_time.isoformat(),
            'max_features_grid': grid,
            'best_params': self.search.best_params_,
            'cv_accuracy': float(self.search.best_score_),
            'cv_error': 1.0 - float(self.search.best_score_)
        }
        if self.oob_score:
            self.training_info['oob_accuracy'] = float(self.search.best_estimator_.oob_score_)
            logger.info(f"Out-of-bag accuracy: {self.training_info['oob_accuracy']:.4f}")

        self._is_fitted = True

        logger.info(f"Best parameters: {self.search.best_params_}")
        logger.info(f"Cross-validated accuracy: {self.search.best_score_:.4f}")
        logger.info("=" * 60)
        logger.info(f"MODEL TRAINING COMPLETE in {training_duration:.2f} seconds")
        logger.info("=" * 60)

        return self

    def _check_features(self, X: pd.DataFrame) -> pd.DataFrame:
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        missing = [c for c in self.feature_names_ if c not in X.columns]
        if missing:
            raise ValueError(
                f"Expected {len(self.feature_names_)} features, missing: {missing}"
            )
        return X[self.feature_names_]

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict classes using the refitted best forest.

        Args:
            X: Feature DataFrame

        Returns:
            Array of predicted class labels
        """
        X = self._check_features(X)
        return self.search.predict(X)

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """Class membership probabilities, columns ordered as classes_."""
        X = self._check_features(X)
        return self.search.predict_proba(X)

    def get_cv_results(self) -> pd.DataFrame:
        """
        Cross-validation summary per candidate.

        Returns:
            DataFrame with max_features, mean/std accuracy and rank
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")

        results = self.search.cv_results_
        return pd.DataFrame({
            'max_features': [int(v) for v in results['param_max_features']],
            'mean_accuracy': results['mean_test_score'],
            'std_accuracy': results['std_test_score'],
            'rank': results['rank_test_score']
        })

    def get_feature_importances(self) -> pd.Series:
        """
        Mean decrease in impurity per predictor.

        Returns:
            Series indexed by feature name, sorted descending
        """
        importances = self.best_estimator_.feature_importances_
        return pd.Series(importances, index=self.feature_names_).sort_values(ascending=False)

    def save(self, filepath: str) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'search': self.search,
            'hyperparameters': {
                'n_estimators': self.n_estimators,
                'max_features_grid': self.max_features_grid,
                'tune_length': self.tune_length,
                'cv_folds': self.cv_folds,
                'random_state': self.random_state,
                'n_jobs': self.n_jobs,
                'oob_score': self.oob_score
            },
            'feature_names_': self.feature_names_,
            'classes_': self.classes_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ActivityClassifier':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded ActivityClassifier instance
        """
        state = joblib.load(filepath)

        model = cls(**state['hyperparameters'])
        model.search = state['search']
        model.feature_names_ = state['feature_names_']
        model.classes_ = state['classes_']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def train_model(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> ActivityClassifier:
    """
    Train a model using configuration parameters.

    Args:
        X_train: Training features
        y_train: Training labels
        config: Full configuration dictionary
        save_path: Path to save the trained model (optional)

    Returns:
        Trained ActivityClassifier
    """
    model_config = config.get('model', {})

    model = ActivityClassifier(
        n_estimators=model_config.get('n_estimators', 500),
        max_features_grid=model_config.get('max_features_grid'),
        tune_length=model_config.get('tune_length', 3),
        cv_folds=model_config.get('cv_folds', 5),
        random_state=model_config.get('random_state', 42),
        n_jobs=model_config.get('n_jobs', -1),
        oob_score=model_config.get('oob_score', True)
    )

    model.fit(X_train, y_train)

    if save_path:
        model.save(save_path)

    return model


def print_model_summary(model: ActivityClassifier) -> None:
    """
    Print a summary of the trained model.

    Args:
        model: Trained model instance
    """
    info = model.training_info

    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print(f"Model Type: GridSearchCV(RandomForestClassifier)")
    print(f"Classes: {', '.join(info.get('classes', []))}")
    print(f"Number of predictors: {info.get('n_features', 'N/A')}")
    print(f"\nHyperparameters:")
    print(f"  - n_estimators: {model.n_estimators}")
    print(f"  - cv_folds: {model.cv_folds}")
    print(f"  - best max_features: {info.get('best_params', {}).get('max_features', 'N/A')}")

    print(f"\nCross-validation results:")
    print(model.get_cv_results().round(4).to_string(index=False))

    print(f"\nTraining Info:")
    print(f"  - Duration: {info.get('training_duration_seconds', 0.0):.2f}s")
    print(f"  - Samples: {info.get('n_samples', 'N/A')}")
    print(f"  - CV accuracy: {info.get('cv_accuracy', float('nan')):.4f}")
    print(f"  - Estimated out-of-sample error: {info.get('cv_error', float('nan')):.4f}")
    if 'oob_accuracy' in info:
        print(f"  - OOB error: {1.0 - info['oob_accuracy']:.4f}")

    print("=" * 50 + "\n")
