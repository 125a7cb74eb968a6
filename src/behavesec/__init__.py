"""Behavioral biometrics anomaly detection: typing, pointer and scroll profiles."""

__version__ = "0.1.0"
