"""
Error taxonomy. Every error here is recoverable: callers turn them into
state transitions or an unavailable score, never into a process exit.
"""


class BehaveSecError(Exception):
    """Base class for all detector errors."""


class InsufficientData(BehaveSecError):
    """Training batch is smaller than the configured minimum."""

    def __init__(self, sample_count, required):
        self.sample_count = sample_count
        self.required = required
        super().__init__(f"Not enough training data: {sample_count} samples, {required} required")


class FeatureDimensionMismatch(BehaveSecError):
    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Feature dimension mismatch: model expects {expected}, got {actual}")


class ModelLoadInvalid(BehaveSecError):
    """Stored profile is unreadable or inconsistent; treat as no model."""


class TrainingFailure(BehaveSecError):
    pass


class TrainingCancelled(TrainingFailure):
    pass


class StoreIOFailure(BehaveSecError):
    def __init__(self, path, message):
        self.path = path
        super().__init__(f"{path}: {message}")
