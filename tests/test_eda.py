"""
Test Suite for EDA Module
==========================
"""

import pytest
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from har_analysis.eda import (
    first_principal_component_order,
    plot_correlation_matrix,
    find_high_correlations,
    rank_features_by_class_separation,
    generate_eda_report,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


@pytest.fixture
def correlated_df():
    rng = np.random.default_rng(0)
    base = rng.normal(size=200)
    return pd.DataFrame({
        'a': base,
        'b': base * 2 + rng.normal(scale=0.01, size=200),
        'c': -base + rng.normal(scale=0.01, size=200),
        'd': rng.normal(size=200),
    })


class TestCorrelation:
    """Tests for correlation analysis."""

    def test_high_correlations(self, correlated_df):
        corr = correlated_df.corr()
        pairs = find_high_correlations(corr, threshold=0.9)

        found = {frozenset((p['col1'], p['col2'])) for p in pairs}
        assert found == {frozenset('ab'), frozenset('ac'), frozenset('bc')}
        assert all(abs(p['correlation']) >= 0.9 for p in pairs)
        strengths = [abs(p['correlation']) for p in pairs]
        assert strengths == sorted(strengths, reverse=True)

    def test_no_high_correlations(self):
        rng = np.random.default_rng(1)
        df = pd.DataFrame(rng.normal(size=(500, 3)), columns=['x', 'y', 'z'])

        assert find_high_correlations(df.corr(), threshold=0.8) == []

    def test_fpc_order_groups_correlated_columns(self, correlated_df):
        order = first_principal_component_order(correlated_df.corr())

        assert set(order) == set('abcd')
        # The negatively loaded column sits at the opposite end from a and b
        assert order.index('c') in (0, 3)
        assert abs(order.index('a') - order.index('b')) == 1

    def test_plot_returns_ordered_matrix(self, correlated_df, tmp_path):
        path = tmp_path / "corr.png"
        fig, corr = plot_correlation_matrix(correlated_df, order='fpc', save_path=str(path))

        assert path.exists()
        assert list(corr.index) == list(corr.columns)
        assert corr.shape == (4, 4)

    def test_plot_without_ordering(self, correlated_df):
        _, corr = plot_correlation_matrix(correlated_df, order=None)

        assert list(corr.columns) == ['a', 'b', 'c', 'd']


def test_rank_features_by_class_separation(train_df):
    df = train_df[['roll_belt', 'total_accel_belt', 'classe']]
    ranking = rank_features_by_class_separation(df, 'classe')

    assert ranking.index[0] == 'roll_belt'
    assert 'classe' not in ranking.index


def test_generate_eda_report(prep_result, tmp_path):
    df = prep_result['X_train'].copy()
    df['classe'] = prep_result['y_train']

    report = generate_eda_report(df, label_column='classe', output_dir=str(tmp_path))

    assert report['figures'] == [
        "01_class_distribution.png",
        "02_correlation_matrix.png",
        "03_feature_boxplots.png",
    ]
    for name in report['figures']:
        assert (tmp_path / name).exists()
    assert set(report['class_counts']) == set('ABCDE')
    assert 'classe' not in report['columns']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
