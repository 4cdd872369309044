"""
Test Suite for Preprocessing Module
=====================================

Tests for the FeatureSelector class and preprocessing functions.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import os

from har_analysis.preprocessing import (
    FeatureSelector,
    near_zero_variance,
    split_train_validation,
    preprocess_pipeline,
    DEFAULT_IDENTIFIER_PATTERNS,
    DEFAULT_IRRELEVANT_PATTERNS,
)
from conftest import EXPECTED_FEATURES


class TestNearZeroVariance:
    """Tests for the near-zero-variance diagnostics."""

    def test_constant_column(self):
        df = pd.DataFrame({'const': [1.0] * 10})
        table = near_zero_variance(df)

        assert table.loc['const', 'zero_var'] == True
        assert table.loc['const', 'nzv'] == True
        assert table.loc['const', 'freq_ratio'] == 0.0

    def test_all_missing_column(self):
        df = pd.DataFrame({'empty': [np.nan] * 5})
        table = near_zero_variance(df)

        assert table.loc['empty', 'zero_var'] == True
        assert table.loc['empty', 'percent_unique'] == 0.0

    def test_dominant_value(self):
        # 96 vs 4 -> ratio 24 > 19, 2% unique
        df = pd.DataFrame({'skewed': [0] * 96 + [1] * 4})
        table = near_zero_variance(df)

        assert table.loc['skewed', 'freq_ratio'] == pytest.approx(24.0)
        assert table.loc['skewed', 'percent_unique'] == pytest.approx(2.0)
        assert table.loc['skewed', 'zero_var'] == False
        assert table.loc['skewed', 'nzv'] == True

    def test_informative_column(self):
        df = pd.DataFrame({'noise': np.arange(100, dtype=float)})
        table = near_zero_variance(df)

        assert table.loc['noise', 'freq_ratio'] == pytest.approx(1.0)
        assert table.loc['noise', 'percent_unique'] == pytest.approx(100.0)
        assert table.loc['noise', 'nzv'] == False

    def test_custom_cuts(self):
        df = pd.DataFrame({'skewed': [0] * 96 + [1] * 4})
        table = near_zero_variance(df, freq_cut=30)

        assert table.loc['skewed', 'nzv'] == False


class TestFeatureSelector:
    """Tests for FeatureSelector class."""

    @pytest.fixture
    def selector(self):
        """Create a selector with default patterns."""
        return FeatureSelector(max_missing_fraction=0.9, label_column='classe')

    def test_init(self, selector):
        assert selector.max_missing_fraction == 0.9
        assert selector.drop_near_zero_variance == False
        assert selector._is_fitted == False

    def test_fit_keeps_expected_columns(self, selector, train_df):
        selector.fit(train_df)

        assert selector._is_fitted == True
        assert selector.feature_columns == EXPECTED_FEATURES

    def test_drop_reasons(self, selector, train_df):
        selector.fit(train_df)
        dropped = selector.dropped_columns

        assert set(dropped['identifier']) == {
            'X', 'user_name', 'raw_timestamp_part_1', 'raw_timestamp_part_2',
            'cvtd_timestamp', 'new_window', 'num_window'
        }
        assert dropped['sparse'] == ['kurtosis_roll_belt']
        assert set(dropped['irrelevant']) == {
            'gyros_belt_x', 'accel_belt_x', 'gyros_dumbbell_x', 'accel_dumbbell_x'
        }
        assert dropped['non_numeric'] == []
        assert dropped['near_zero_variance'] == []

    def test_label_never_dropped(self, selector, train_df):
        selector.fit(train_df)

        assert 'classe' not in selector.get_dropped_columns()
        assert 'classe' in selector.transform(train_df).columns

    def test_nzv_table_flags_constant_predictor(self, selector, train_df):
        selector.fit(train_df)
        table = selector.nzv_table

        assert table.loc['total_accel_belt', 'nzv'] == True
        assert table['nzv'].sum() == 1

    def test_drop_near_zero_variance(self, train_df):
        selector = FeatureSelector(drop_near_zero_variance=True)
        selector.fit(train_df)

        assert 'total_accel_belt' not in selector.feature_columns
        assert selector.dropped_columns['near_zero_variance'] == ['total_accel_belt']

    def test_non_numeric_dropped(self, train_df):
        df = train_df.copy()
        df['sensor_note'] = 'ok'
        selector = FeatureSelector().fit(df)

        assert selector.dropped_columns['non_numeric'] == ['sensor_note']

    def test_custom_patterns(self, train_df):
        selector = FeatureSelector(irrelevant_patterns=[r"_dumbbell"])
        selector.fit(train_df)

        assert all('dumbbell' not in c for c in selector.feature_columns)
        assert 'gyros_belt_x' in selector.feature_columns

    def test_transform_before_fit(self, selector, train_df):
        with pytest.raises(ValueError, match="must be fitted"):
            selector.transform(train_df)

    def test_transform_test_table(self, selector, train_df, test_df):
        selector.fit(train_df)
        transformed = selector.transform(test_df)

        assert list(transformed.columns) == EXPECTED_FEATURES
        assert len(transformed) == len(test_df)

    def test_transform_missing_column(self, selector, train_df, test_df):
        selector.fit(train_df)

        with pytest.raises(ValueError, match="roll_belt"):
            selector.transform(test_df.drop(columns=['roll_belt']))

    def test_nothing_left(self):
        df = pd.DataFrame({'user_name': ['a', 'b'], 'classe': ['A', 'B']})

        with pytest.raises(ValueError, match="No predictor columns"):
            FeatureSelector().fit(df)

    def test_sparse_threshold_is_exclusive(self):
        df = pd.DataFrame({
            'roll_belt': np.arange(10, dtype=float),
            'at_limit': [1.0] + [np.nan] * 9,
            'all_missing': [np.nan] * 10,
            'classe': ['A', 'B'] * 5,
        })

        selector = FeatureSelector(max_missing_fraction=0.9).fit(df)

        assert 'at_limit' in selector.feature_columns
        assert selector.dropped_columns['sparse'] == ['all_missing']

    def test_default_patterns_not_shared(self):
        first = FeatureSelector()
        first.identifier_patterns.append(r"^roll_")
        first.irrelevant_patterns.clear()

        second = FeatureSelector()

        assert r"^roll_" not in DEFAULT_IDENTIFIER_PATTERNS
        assert second.identifier_patterns == DEFAULT_IDENTIFIER_PATTERNS
        assert second.irrelevant_patterns == DEFAULT_IRRELEVANT_PATTERNS
        assert len(DEFAULT_IRRELEVANT_PATTERNS) == 1

    def test_save_load(self, selector, train_df):
        selector.fit(train_df)

        with tempfile.NamedTemporaryFile(suffix='.joblib', delete=False) as f:
            temp_path = f.name

        try:
            selector.save(temp_path)
            loaded = FeatureSelector.load(temp_path)

            assert loaded.feature_columns == selector.feature_columns
            assert loaded.dropped_columns == selector.dropped_columns
            assert loaded._is_fitted == True
        finally:
            os.unlink(temp_path)


def test_split_is_stratified(train_df):
    X = train_df[EXPECTED_FEATURES]
    y = train_df['classe']

    X_train, X_val, y_train, y_val = split_train_validation(X, y, train_split=0.7, random_state=1)

    assert len(X_train) == 140
    assert len(X_val) == 60
    assert (y_val.value_counts() == 12).all()


class TestPreprocessPipeline:
    """Tests for the preprocess_pipeline function."""

    def test_pipeline_returns_expected_keys(self, prep_result):
        expected_keys = [
            'X_train', 'X_val', 'y_train', 'y_val', 'X_test', 'test_ids',
            'selector', 'feature_names', 'nzv_table'
        ]

        for key in expected_keys:
            assert key in prep_result, f"Missing key: {key}"

    def test_pipeline_shapes(self, prep_result):
        assert prep_result['X_train'].shape == (140, len(EXPECTED_FEATURES))
        assert prep_result['X_val'].shape == (60, len(EXPECTED_FEATURES))
        assert prep_result['X_test'].shape == (20, len(EXPECTED_FEATURES))
        assert list(prep_result['test_ids']) == list(range(1, 21))

    def test_incomplete_rows_dropped(self, train_df, fast_config):
        df = train_df.copy()
        df.loc[:9, 'roll_belt'] = np.nan

        result = preprocess_pipeline(df, fast_config)

        assert len(result['X_train']) + len(result['X_val']) == 190
        assert result['X_test'] is None

    def test_missing_label(self, test_df, fast_config):
        with pytest.raises(ValueError, match="Label column"):
            preprocess_pipeline(test_df, fast_config)

    def test_save_selector(self, train_df, fast_config, tmp_path):
        path = tmp_path / "models" / "selector.joblib"
        preprocess_pipeline(train_df, fast_config, save_selector=str(path))

        assert path.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
