"""
Model store: one versioned blob per profile, written with torch.save.

    {schema_version, version, created_at, input_dim, state_dict,
     normalization {mean, std, input_dim, sample_count},
     thresholds {name: float}, baseline {...}}

Writes go to a temporary file that replaces the target in one step, so a
crash mid-save never leaves a partial profile behind.
"""
import os
import pickle
from pathlib import Path

import torch

from behavesec.exceptions import ModelLoadInvalid, StoreIOFailure
from behavesec.features import FEATURE_DIM, FEATURE_SCHEMA_VERSION, BehaviorBaseline
from behavesec.logger import logger
from behavesec.model import BehaviorAutoencoder
from behavesec.profile import BehaviorProfile, NormalizationStats, ThresholdSet

REQUIRED_KEYS = ("schema_version", "input_dim", "state_dict", "normalization", "thresholds", "baseline")


class ModelStore:
    def __init__(self, path):
        self.path = Path(path)

    def exists(self):
        return self.path.exists()

    def save(self, profile):
        blob = {
            "schema_version": profile.schema_version,
            "version": profile.version,
            "created_at": float(profile.created_at),
            "input_dim": int(profile.input_dim),
            "state_dict": profile.model.state_dict(),
            "normalization": profile.normalization.to_dict(),
            "thresholds": profile.thresholds.to_dict(),
            "baseline": profile.baseline.to_dict(),
            "epochs_trained": int(profile.epochs_trained),
            "best_val_loss": None if profile.best_val_loss is None else float(profile.best_val_loss),
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            torch.save(blob, tmp_path)
            os.replace(tmp_path, self.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StoreIOFailure(self.path, f"save failed: {e}") from e
        logger.info(f"Profile {profile.version[:8]} saved to {self.path}")

    def load(self):
        """
        Loads and validates the stored profile.

        Returns None when nothing is stored; raises ModelLoadInvalid when the
        blob is unreadable, from another feature schema, or inconsistent.
        """
        if not self.path.exists():
            return None

        try:
            blob = torch.load(self.path, map_location="cpu", weights_only=True)
        except (OSError, RuntimeError, EOFError, ValueError, pickle.UnpicklingError) as e:
            raise ModelLoadInvalid(f"Unreadable profile {self.path}: {e}") from e

        if not isinstance(blob, dict):
            raise ModelLoadInvalid("Stored profile is not a mapping")
        missing = [key for key in REQUIRED_KEYS if key not in blob]
        if missing:
            raise ModelLoadInvalid(f"Stored profile missing keys: {', '.join(missing)}")

        if blob["schema_version"] != FEATURE_SCHEMA_VERSION:
            raise ModelLoadInvalid(
                f"Feature schema {blob['schema_version']} does not match current schema {FEATURE_SCHEMA_VERSION}"
            )
        input_dim = blob["input_dim"]
        if input_dim != FEATURE_DIM:
            raise ModelLoadInvalid(f"Stored input dim {input_dim} does not match feature dim {FEATURE_DIM}")

        try:
            normalization = NormalizationStats.from_dict(blob["normalization"])
            thresholds = ThresholdSet.from_dict(blob["thresholds"])
            baseline = BehaviorBaseline.from_dict(blob["baseline"])
            model = BehaviorAutoencoder(input_dim)
            model.load_state_dict(blob["state_dict"])
            model.eval()  # Set to evaluation mode immediately
        except (KeyError, TypeError, ValueError, RuntimeError) as e:
            raise ModelLoadInvalid(f"Corrupt profile contents: {e}") from e

        profile = BehaviorProfile(
            model=model,
            normalization=normalization,
            thresholds=thresholds,
            baseline=baseline,
            schema_version=blob["schema_version"],
            version=str(blob.get("version", "")),
            created_at=float(blob.get("created_at", 0.0)),
            epochs_trained=int(blob.get("epochs_trained", 0)),
            best_val_loss=blob.get("best_val_loss"),
        )
        if not profile.is_consistent():
            raise ModelLoadInvalid("Stored normalization statistics or thresholds are inconsistent with the model")

        logger.info(f"Profile {profile.version[:8]} loaded from {self.path}")
        return profile

    def delete(self):
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreIOFailure(self.path, f"delete failed: {e}") from e
        logger.info(f"Deleted stored profile {self.path}")
