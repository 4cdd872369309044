"""
Shared fixtures: synthetic data shaped like the weight-lifting sensor export.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

CLASSES = ['A', 'B', 'C', 'D', 'E']
SENSORS = ['belt', 'dumbbell']


def make_wle_frame(n_per_class: int = 40, seed: int = 42, labelled: bool = True) -> pd.DataFrame:
    """Build a small table with identifiers, sparse summary columns and class-shifted sensors."""
    rng = np.random.default_rng(seed)
    n = n_per_class * len(CLASSES)
    class_idx = np.repeat(np.arange(len(CLASSES)), n_per_class)
    new_window = np.where(np.arange(n) % 50 == 0, 'yes', 'no')

    data = {
        'X': np.arange(1, n + 1),
        'user_name': rng.choice(['adelmo', 'carlitos', 'charles'], n),
        'raw_timestamp_part_1': 1322489729 + np.arange(n),
        'raw_timestamp_part_2': rng.integers(0, 1_000_000, n),
        'cvtd_timestamp': ['28/11/2011 14:15'] * n,
        'new_window': new_window,
        'num_window': np.arange(n) // 10,
    }

    for sensor in SENSORS:
        for angle in ['roll', 'pitch']:
            data[f'{angle}_{sensor}'] = class_idx * 5.0 + rng.normal(0, 1, n)
        for kind in ['gyros', 'accel']:
            for axis in 'xyz':
                data[f'{kind}_{sensor}_{axis}'] = class_idx * 2.0 + rng.normal(0, 1, n)

    kurtosis = np.full(n, np.nan)
    window_rows = new_window == 'yes'
    kurtosis[window_rows] = rng.normal(0, 1, window_rows.sum())
    data['kurtosis_roll_belt'] = kurtosis

    total_accel = np.full(n, 3.0)
    total_accel[:4] = 4.0
    data['total_accel_belt'] = total_accel

    df = pd.DataFrame(data)
    if labelled:
        df['classe'] = np.repeat(CLASSES, n_per_class)
    else:
        df['problem_id'] = np.arange(1, n + 1)
    return df


# Kept predictors in column order: lateral (x) axes, identifiers and the
# sparse kurtosis column are dropped
EXPECTED_FEATURES = [
    col
    for sensor in SENSORS
    for col in (
        [f'roll_{sensor}', f'pitch_{sensor}']
        + [f'{kind}_{sensor}_{axis}' for kind in ['gyros', 'accel'] for axis in 'yz']
    )
] + ['total_accel_belt']


@pytest.fixture
def train_df():
    return make_wle_frame(n_per_class=40, seed=42, labelled=True)


@pytest.fixture
def test_df():
    return make_wle_frame(n_per_class=4, seed=7, labelled=False)


@pytest.fixture
def fast_config():
    """Config with a small forest so the suite stays quick."""
    return {
        'data': {'label_column': 'classe', 'id_column': 'problem_id'},
        'preprocessing': {'train_split': 0.7, 'random_state': 42},
        'model': {
            'n_estimators': 25,
            'cv_folds': 5,
            'tune_length': 3,
            'n_jobs': 1,
            'random_state': 42,
            'oob_score': True
        }
    }


@pytest.fixture
def prep_result(train_df, test_df, fast_config):
    from har_analysis.preprocessing import preprocess_pipeline
    return preprocess_pipeline(train_df, fast_config, test_df=test_df)


@pytest.fixture
def trained_model(prep_result, fast_config):
    from har_analysis.model import train_model
    return train_model(prep_result['X_train'], prep_result['y_train'], fast_config)
