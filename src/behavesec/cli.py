"""
Command line interface: train a profile from an event log, verify an event
log against it, inspect or delete the stored profile, and simulate data.
"""
import argparse
import sys
from dataclasses import replace
from pathlib import Path

import pandas as pd

from behavesec.config import MODEL_FILE, PRESETS, SENSITIVITIES, DetectorConfig, TrainingConfig
from behavesec.events import parse_events
from behavesec.exceptions import InsufficientData, ModelLoadInvalid, StoreIOFailure, TrainingFailure
from behavesec.logger import logger
from behavesec.scoring import score_event
from behavesec.status import classify_status
from behavesec.store import ModelStore
from behavesec.synthetic import impostor_session, user_session
from behavesec.train import train_profile


def load_event_log(path):
    """Reads an event CSV (one row per event) into validated Event objects."""
    # Read everything as text so key names like "1" or "NA" survive; parse_event converts numbers
    df = pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])
    logger.info(f"Loaded {len(df)} records from {path}")
    events = parse_events(df.to_dict("records"))
    skipped = len(df) - len(events)
    if skipped:
        logger.warning(f"Skipped {skipped} invalid records")
    return events


def write_event_log(events, path):
    df = pd.DataFrame([event.to_record() for event in events])
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info(f"Wrote {len(df)} events to {path}")


def build_config(args):
    base = DetectorConfig.from_preset(args.preset) if getattr(args, "preset", None) else DetectorConfig()
    overrides = {"model_path": Path(args.model)}
    if getattr(args, "min_samples", None) is not None:
        overrides["min_samples"] = args.min_samples
    if getattr(args, "sensitivity", None) is not None:
        overrides["sensitivity"] = args.sensitivity
    if getattr(args, "epochs", None) is not None or getattr(args, "seed", None) is not None:
        training = base.training
        overrides["training"] = TrainingConfig(
            epochs=args.epochs if args.epochs is not None else training.epochs,
            batch_size=training.batch_size,
            validation_fraction=training.validation_fraction,
            patience=training.patience,
            learning_rate=training.learning_rate,
            weight_decay=training.weight_decay,
            percentiles=dict(training.percentiles),
            seed=args.seed,
        )
    return replace(base, **overrides)


def print_progress(phase, percent, message):
    print(f"[{phase:<11}] {percent:3d}% {message}")


def cmd_train(args):
    config = build_config(args)
    events = load_event_log(args.events)
    try:
        profile = train_profile(events, config, progress=print_progress)
    except InsufficientData as e:
        logger.error(f"{e}. Collect more events and try again.")
        return 1
    except TrainingFailure as e:
        logger.error(f"Training failed: {e}")
        return 1

    try:
        ModelStore(config.model_path).save(profile)
    except StoreIOFailure as e:
        logger.error(str(e))
        return 1
    return 0


def _load_profile(path):
    try:
        profile = ModelStore(path).load()
    except ModelLoadInvalid as e:
        logger.error(f"Stored profile is invalid: {e}")
        return None
    if profile is None:
        logger.error(f"No profile found at {path}. Run 'behavesec train' first!")
    return profile


def cmd_verify(args):
    config = build_config(args)
    profile = _load_profile(config.model_path)
    if profile is None:
        return 1

    events = load_event_log(args.events)
    history = []

    print("\n" + "=" * 75)
    print(f"{'ROW':<5} | {'KIND':<12} | {'SCORE':<8} | {'ERROR':<12} | {'STATUS'}")
    print("-" * 75)
    for index, event in enumerate(events):
        result = score_event(profile, event, events[max(0, index - 3):index], config.sensitivity, config)
        if not result.available:
            print(f"{index + 1:<5} | {event.subkind:<12} | {'N/A':<8} | {'N/A':<12} | {result.reason}")
            continue
        history.append(result.score)
        status = classify_status(history[-config.history_size:], config.sensitivity,
                                 config.status_min_history, config.status_window)
        print(f"{index + 1:<5} | {event.subkind:<12} | {result.score:<8.2f} | "
              f"{result.reconstruction_error:<12.6f} | {status.value}")

    print("-" * 75)
    status = classify_status(history[-config.history_size:], config.sensitivity,
                             config.status_min_history, config.status_window)
    print("\n--- SUMMARY ---")
    print(f"Scored Events: {len(history)} / {len(events)}")
    if history:
        print(f"Mean Score:    {sum(history) / len(history):.2f}")
    print(f"Verdict:       {status.value.upper()} (sensitivity: {config.sensitivity})")
    print("=" * 30)
    return 0


def cmd_info(args):
    profile = _load_profile(args.model)
    if profile is None:
        return 1
    print(f"Profile:        {profile.version}")
    print(f"Schema:         {profile.schema_version}")
    print(f"Input Dim:      {profile.input_dim}")
    print(f"Samples:        {profile.sample_count}")
    print(f"Epochs Trained: {profile.epochs_trained}")
    for name, value in profile.thresholds.values.items():
        print(f"Threshold {name:<7} {value:.6f}")
    return 0


def cmd_reset(args):
    try:
        ModelStore(args.model).delete()
    except StoreIOFailure as e:
        logger.error(str(e))
        return 1
    return 0


def cmd_simulate(args):
    generator = impostor_session if args.impostor else user_session
    write_event_log(generator(args.count, seed=args.seed), args.output)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="behavesec", description="Behavioral biometrics anomaly detector.")
    sub = parser.add_subparsers(dest="command", required=True)

    train = sub.add_parser("train", help="Train a profile from an event CSV")
    train.add_argument("events", help="Path to the event log CSV")
    train.add_argument("--preset", choices=sorted(PRESETS))
    train.add_argument("--min-samples", type=int)
    train.add_argument("--epochs", type=int)
    train.add_argument("--seed", type=int)
    train.set_defaults(func=cmd_train)

    verify = sub.add_parser("verify", help="Score an event CSV against the stored profile")
    verify.add_argument("events", help="Path to the event log CSV")
    verify.add_argument("--sensitivity", choices=SENSITIVITIES)
    verify.set_defaults(func=cmd_verify)

    info = sub.add_parser("info", help="Describe the stored profile")
    info.set_defaults(func=cmd_info)

    reset = sub.add_parser("reset", help="Delete the stored profile")
    reset.set_defaults(func=cmd_reset)

    simulate = sub.add_parser("simulate", help="Write a synthetic event CSV")
    simulate.add_argument("output")
    simulate.add_argument("--count", type=int, default=400)
    simulate.add_argument("--impostor", action="store_true")
    simulate.add_argument("--seed", type=int)
    simulate.set_defaults(func=cmd_simulate)

    for command in (train, verify, info, reset):
        command.add_argument("--model", default=str(MODEL_FILE), help="Path to the stored profile")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
