"""
Profile training: feature extraction, normalization, autoencoder fitting with
early stopping, and threshold calibration.
"""
import copy

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim
from torch.utils.data import DataLoader, TensorDataset
from sklearn.model_selection import train_test_split

from behavesec.exceptions import InsufficientData, TrainingCancelled, TrainingFailure
from behavesec.features import FeatureExtractor
from behavesec.logger import logger
from behavesec.model import BehaviorAutoencoder, reconstruction_errors
from behavesec.profile import BehaviorProfile, NormalizationStats, ThresholdSet


def _notify(progress, phase, percent, message):
    if progress is not None:
        progress(phase, percent, message)


def split_train_validation(X, validation_fraction):
    """Validation rows are taken from the tail of the batch."""
    if validation_fraction <= 0 or len(X) < 4:
        return X, X
    X_train, X_val = train_test_split(X, test_size=validation_fraction, shuffle=False)
    return X_train, X_val


def train_model(X_train, X_val, input_dim, training, progress=None, should_stop=None):
    """
    Fits an autoencoder on normalized rows. Returns (model, epochs_run, best_val_loss).
    """
    batch_size = training.batch_size
    # BatchNorm cannot train on a single-row batch
    drop_last = len(X_train) > batch_size and len(X_train) % batch_size == 1

    # Prepare DataLoaders
    train_dataset = TensorDataset(torch.FloatTensor(X_train), torch.FloatTensor(X_train))
    val_dataset = TensorDataset(torch.FloatTensor(X_val), torch.FloatTensor(X_val))

    train_loader = DataLoader(train_dataset, batch_size=batch_size, shuffle=True, drop_last=drop_last)
    val_loader = DataLoader(val_dataset, batch_size=batch_size, shuffle=False)

    model = BehaviorAutoencoder(input_dim)

    criterion = nn.MSELoss()
    optimizer = optim.Adam(model.parameters(), lr=training.learning_rate, weight_decay=training.weight_decay)

    # Scheduler: Reduce LR if validation loss stops improving
    scheduler = optim.lr_scheduler.ReduceLROnPlateau(
        optimizer, mode='min', factor=0.5, patience=max(1, training.patience // 2)
    )

    best_val_loss = float('inf')
    patience_counter = 0
    best_model_state = copy.deepcopy(model.state_dict())
    epochs_run = 0

    logger.info(f"Training autoencoder | Input Dim: {input_dim} | Train: {len(X_train)} | Val: {len(X_val)}")

    for epoch in range(training.epochs):
        if should_stop is not None and should_stop():
            raise TrainingCancelled(f"Training cancelled at epoch {epoch}")

        # --- Training Step ---
        model.train()
        train_loss = 0.0
        seen = 0
        for batch_features, _ in train_loader:
            optimizer.zero_grad()
            outputs = model(batch_features)
            loss = criterion(outputs, batch_features)
            loss.backward()
            optimizer.step()
            train_loss += loss.item() * batch_features.size(0)
            seen += batch_features.size(0)

        train_loss /= max(seen, 1)

        # --- Validation Step ---
        model.eval()
        val_loss = 0.0
        with torch.no_grad():
            for batch_features, _ in val_loader:
                outputs = model(batch_features)
                loss = criterion(outputs, batch_features)
                val_loss += loss.item() * batch_features.size(0)

        val_loss /= len(val_loader.dataset)
        epochs_run = epoch + 1

        if not np.isfinite(val_loss):
            raise TrainingFailure(f"Validation loss diverged at epoch {epoch}")

        # Step Scheduler
        scheduler.step(val_loss)

        # --- Early Stopping Logic ---
        if val_loss < best_val_loss:
            best_val_loss = val_loss
            best_model_state = copy.deepcopy(model.state_dict())
            patience_counter = 0
        else:
            patience_counter += 1

        logger.debug(f"Epoch {epoch:03d}: Train Loss: {train_loss:.6f} | Val Loss: {val_loss:.6f}")
        if epoch % 10 == 0:
            logger.info(f"Epoch {epoch:03d}: Train Loss: {train_loss:.6f} | Val Loss: {val_loss:.6f}")

        _notify(
            progress, "training", int(epochs_run * 100 / training.epochs),
            f"Epoch {epochs_run}/{training.epochs} - val loss {val_loss:.6f}",
        )

        if patience_counter >= training.patience:
            logger.info(f"Early stopping at epoch {epoch}")
            break

    # Load best weights
    model.load_state_dict(best_model_state)
    model.eval()
    return model, epochs_run, best_val_loss


def train_profile(events, config, progress=None, should_stop=None):
    """
    Trains a complete BehaviorProfile from a batch of events.

    Raises InsufficientData when the batch is below config.min_samples and
    TrainingFailure when fitting fails. Nothing is returned until the model,
    normalization statistics and thresholds are all computed.
    """
    training = config.training
    if len(events) < config.min_samples:
        raise InsufficientData(len(events), config.min_samples)

    _notify(progress, "extracting", 0, f"Extracting features from {len(events)} events")
    try:
        extractor = FeatureExtractor(viewport=config.viewport)
        X = extractor.transform(events)
        baseline = extractor.baseline

        normalization = NormalizationStats.fit(X)
        X_scaled = normalization.transform(X)
        X_train, X_val = split_train_validation(X_scaled, training.validation_fraction)

        if training.seed is not None:
            torch.manual_seed(training.seed)

        model, epochs_run, best_val_loss = train_model(
            X_train, X_val, normalization.input_dim, training, progress, should_stop
        )

        _notify(progress, "calibrating", 100, "Calibrating thresholds")
        errors = reconstruction_errors(model, X_scaled)
    except TrainingFailure:
        raise
    except (RuntimeError, ValueError, ArithmeticError) as e:
        raise TrainingFailure(f"Profile training failed: {e}") from e

    if not np.all(np.isfinite(errors)):
        raise TrainingFailure("Reconstruction errors are not finite")
    thresholds = ThresholdSet.from_errors(errors, training.percentiles)

    threshold_info = ", ".join(f"{name}={value:.6f}" for name, value in thresholds.values.items())
    logger.info(f"Thresholds: {threshold_info} (Mean: {errors.mean():.6f}, Std: {errors.std():.6f})")

    profile = BehaviorProfile(
        model=model,
        normalization=normalization,
        thresholds=thresholds,
        baseline=baseline,
        epochs_trained=epochs_run,
        best_val_loss=best_val_loss,
    )
    _notify(progress, "complete", 100, f"Profile {profile.version[:8]} trained on {len(X)} vectors")
    return profile
