"""Workflow stages: task building, resampling, training, tuning and prediction."""
