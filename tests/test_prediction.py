"""
Test Suite for Prediction Module
=================================
"""

import json

import pytest
import numpy as np
import pandas as pd

from har_analysis.prediction import (
    predict_test_set,
    export_predictions,
    write_answer_files,
    generate_prediction_report,
    run_final_prediction,
)


class TestPredictTestSet:
    """Tests for predict_test_set."""

    def test_columns(self, trained_model, prep_result):
        predictions = predict_test_set(
            trained_model, prep_result['X_test'], prep_result['test_ids']
        )

        assert list(predictions.columns) == [
            'problem_id', 'prediction', 'prob_A', 'prob_B', 'prob_C', 'prob_D', 'prob_E'
        ]
        assert list(predictions['problem_id']) == list(range(1, 21))
        assert set(predictions['prediction']) <= set('ABCDE')

    def test_recovers_classes(self, trained_model, prep_result):
        predictions = predict_test_set(
            trained_model, prep_result['X_test'], prep_result['test_ids']
        )

        # Synthetic test cases come in blocks of four per class
        expected = list(np.repeat(list('ABCDE'), 4))
        agreement = np.mean(predictions['prediction'].values == np.array(expected))
        assert agreement >= 0.9

    def test_default_ids(self, trained_model, prep_result):
        predictions = predict_test_set(trained_model, prep_result['X_test'])

        assert list(predictions['problem_id']) == list(range(1, 21))

    def test_missing_values(self, trained_model, prep_result):
        X = prep_result['X_test'].copy()
        X.iloc[0, 0] = np.nan

        with pytest.raises(ValueError, match="missing values"):
            predict_test_set(trained_model, X)

    def test_id_length_mismatch(self, trained_model, prep_result):
        with pytest.raises(ValueError, match="ids"):
            predict_test_set(trained_model, prep_result['X_test'], pd.Series([1, 2]))


@pytest.fixture
def predictions():
    return pd.DataFrame({
        'problem_id': [1, 2, 3],
        'prediction': ['B', 'A', 'B'],
        'prob_A': [0.1, 0.8, 0.3],
        'prob_B': [0.9, 0.2, 0.7],
    })


def test_export_predictions(predictions, tmp_path):
    path = export_predictions(predictions, str(tmp_path), include_timestamp=False)

    assert path.endswith("test_predictions.csv")
    loaded = pd.read_csv(path)
    assert list(loaded['prediction']) == ['B', 'A', 'B']


def test_write_answer_files(predictions, tmp_path):
    paths = write_answer_files(predictions, str(tmp_path / "answers"))

    assert len(paths) == 3
    assert (tmp_path / "answers" / "problem_id_1.txt").read_text() == 'B'
    assert (tmp_path / "answers" / "problem_id_2.txt").read_text() == 'A'


def test_generate_prediction_report(predictions, tmp_path):
    metrics = {'overall': {'accuracy': 0.99, 'out_of_sample_error': 0.01}}
    path = tmp_path / "report.json"

    report = generate_prediction_report(predictions, metrics, output_path=str(path))

    assert report['summary']['class_counts'] == {'A': 1, 'B': 2}
    assert report['summary']['validation_accuracy'] == 0.99
    assert report['predictions']['1'] == {'predicted_class': 'B', 'confidence': 0.9}
    with open(path) as f:
        assert json.load(f)['summary']['n_predictions'] == 3


def test_run_final_prediction(trained_model, prep_result, tmp_path):
    result = run_final_prediction(
        trained_model,
        prep_result['X_test'],
        prep_result['test_ids'],
        output_dir=str(tmp_path)
    )

    assert len(result['predictions']) == 20
    assert len(result['answer_files']) == 20
    assert (tmp_path / "prediction_report.json").exists()
    assert (tmp_path / "answers" / "problem_id_20.txt").exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
