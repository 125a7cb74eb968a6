"""
Identity verdict from the rolling anomaly-score history.
"""
from enum import Enum

import numpy as np

from behavesec.config import DEFAULT_SENSITIVITY, STATUS_CUTOFFS


class UserStatus(Enum):
    ANALYZING = "analyzing"
    ORIGINAL = "original"
    UNKNOWN = "unknown"
    DIFFERENT = "different"


def status_cutoffs(sensitivity):
    return STATUS_CUTOFFS.get(sensitivity, STATUS_CUTOFFS[DEFAULT_SENSITIVITY])


def classify_status(history, sensitivity=DEFAULT_SENSITIVITY, min_history=10, window=10):
    """
    Maps the mean of the last `window` scores onto Original / Unknown / Different.

    Fewer than `min_history` scores yields ANALYZING.
    """
    scores = list(history)
    if len(scores) < min_history or not scores:
        return UserStatus.ANALYZING

    mean_score = float(np.mean(scores[-window:]))
    uncertain, different = status_cutoffs(sensitivity)

    if mean_score >= different:
        return UserStatus.DIFFERENT
    if mean_score >= uncertain:
        return UserStatus.UNKNOWN
    return UserStatus.ORIGINAL
