"""Carb Estimator: meal photo to carbohydrate estimate."""

__version__ = "0.1.0"
