"""Learner registry backed by scikit-learn."""
