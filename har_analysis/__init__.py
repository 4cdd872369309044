"""
Activity Quality Analysis
=========================

A machine learning pipeline that classifies how well a weight-lifting
exercise was performed (classes A-E) from belt, arm, forearm and dumbbell
inertial sensor readings.

Modules:
    - data_loader: CSV ingestion and validation
    - eda: Exploratory Data Analysis (Phase 1)
    - preprocessing: Column selection and train/validation split (Phase 2)
    - model: Cross-validated RandomForestClassifier (Phase 3)
    - evaluation: Confusion matrix and accuracy statistics (Phase 4)
    - prediction: Predictions for the unlabeled test set (Phase 5)
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
