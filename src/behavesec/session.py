"""
Session lifecycle: Idle -> Training -> Evaluating -> Detecting -> Idle (reset).

DetectorSession is the single owner of all mutable model and session state.
Training runs as a background task (the epoch loop itself on a worker thread)
so event ingestion keeps flowing; events that arrive while a profile is being
evaluated are held back and replayed in arrival order once it finishes.
"""
from __future__ import annotations

import asyncio
import contextlib
import threading
import uuid
from collections import Counter, deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from behavesec.config import SENSITIVITIES, DetectorConfig
from behavesec.exceptions import (
    InsufficientData, ModelLoadInvalid, StoreIOFailure, TrainingCancelled, TrainingFailure,
)
from behavesec.logger import logger
from behavesec.scoring import ScoreResult, score_event
from behavesec.status import UserStatus, classify_status
from behavesec.store import ModelStore
from behavesec.train import train_profile

# Events kept as context for move acceleration/smoothness
CONTEXT_EVENTS = 3


class Phase(Enum):
    IDLE = "idle"
    TRAINING = "training"
    EVALUATING = "evaluating"
    DETECTING = "detecting"


class Trigger(Enum):
    BEGIN_TRAINING = "begin_training"
    MODEL_READY = "model_ready"
    COUNTDOWN_ELAPSED = "countdown_elapsed"
    FINISH_NOW = "finish_now"
    TRAINING_SUCCEEDED = "training_succeeded"
    INSUFFICIENT_DATA = "insufficient_data"
    TRAINING_FAILED = "training_failed"
    RESET = "reset"
    STOP = "stop"


# Any (phase, trigger) pair not listed leaves the phase unchanged
_TRANSITIONS = {
    Phase.IDLE: {
        Trigger.BEGIN_TRAINING: Phase.TRAINING,
        Trigger.MODEL_READY: Phase.DETECTING,
    },
    Phase.TRAINING: {
        Trigger.COUNTDOWN_ELAPSED: Phase.EVALUATING,
        Trigger.FINISH_NOW: Phase.EVALUATING,
    },
    Phase.EVALUATING: {
        Trigger.TRAINING_SUCCEEDED: Phase.DETECTING,
        Trigger.INSUFFICIENT_DATA: Phase.TRAINING,
        Trigger.TRAINING_FAILED: Phase.TRAINING,
    },
    Phase.DETECTING: {},
}


def next_phase(phase, trigger):
    if trigger in (Trigger.RESET, Trigger.STOP):
        return Phase.IDLE
    return _TRANSITIONS[phase].get(trigger, phase)


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    phase: Phase
    remaining_seconds: int
    sample_count: int
    counters: Dict[str, int]
    history: List[float]
    status: UserStatus
    sensitivity: str
    model_version: Optional[str]


ProgressCallback = Callable[[str, int, str], None]
ScoreCallback = Callable[[float, str, UserStatus], None]


class DetectorSession:
    def __init__(self, config: Optional[DetectorConfig] = None, store: Optional[ModelStore] = None,
                 on_progress: Optional[ProgressCallback] = None, on_score: Optional[ScoreCallback] = None,
                 tick_seconds: float = 1.0):
        self.config = config or DetectorConfig()
        self.store = store or ModelStore(self.config.model_path)
        self.on_progress = on_progress
        self.on_score = on_score
        self.tick_seconds = tick_seconds

        self.session_id = uuid.uuid4().hex
        self.phase = Phase.IDLE
        self.sensitivity = self.config.sensitivity
        self.remaining = self.config.training_period_seconds
        self.status = UserStatus.ANALYZING
        self.counters = Counter()
        self.history = deque(maxlen=self.config.history_size)

        self._profile = None
        self._buffer = []
        self._pending = []
        self._recent = deque(maxlen=CONTEXT_EVENTS)
        self._countdown_task = None
        self._evaluation_task = None
        self._cancel = threading.Event()
        self._store_lock = asyncio.Lock()

    # --- read-only views ---

    @property
    def profile(self):
        return self._profile

    @property
    def sample_count(self):
        return len(self._buffer)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            phase=self.phase,
            remaining_seconds=self.remaining,
            sample_count=len(self._buffer),
            counters=dict(self.counters),
            history=list(self.history),
            status=self.status,
            sensitivity=self.sensitivity,
            model_version=self._profile.version if self._profile is not None else None,
        )

    # --- lifecycle operations ---

    async def start(self):
        """Loads a stored profile if there is a valid one, otherwise starts training."""
        profile = None
        try:
            profile = await asyncio.to_thread(self.store.load)
        except ModelLoadInvalid as e:
            logger.warning(f"Ignoring stored profile: {e}")

        if profile is not None:
            self._activate(profile)
        else:
            await self._begin_training()

    async def resume(self):
        if self.phase is not Phase.IDLE:
            logger.info(f"Resume ignored in phase {self.phase.value}")
            return
        if self._profile is not None:
            self._activate(self._profile)
        else:
            await self._begin_training()

    async def finish_now(self) -> bool:
        """Forces early evaluation. Returns False unless training with enough samples."""
        if self.phase is not Phase.TRAINING:
            return False
        if len(self._buffer) < self.config.min_samples:
            logger.info(f"Finish requested with {len(self._buffer)}/{self.config.min_samples} samples; still collecting")
            return False
        await self._cancel_countdown()
        self._start_evaluation(Trigger.FINISH_NOW)
        return True

    async def reset(self, restart: bool = True):
        """
        Clears all session state, deletes the stored profile and (by default)
        starts a fresh training phase under a new session id.
        """
        self._fire(Trigger.RESET)
        await self._cancel_countdown()
        await self._cancel_evaluation()

        # Waits for an in-flight save before deleting
        async with self._store_lock:
            try:
                await asyncio.to_thread(self.store.delete)
            except StoreIOFailure as e:
                logger.error(f"Could not delete stored profile: {e}")

        self._profile = None
        self._buffer = []
        self._pending = []
        self._recent.clear()
        self.counters.clear()
        self.history.clear()
        self.status = UserStatus.ANALYZING
        self.remaining = self.config.training_period_seconds
        self.session_id = uuid.uuid4().hex
        logger.info(f"Session reset, new session {self.session_id[:8]}")

        if restart:
            await self._begin_training()

    async def close(self):
        """Stops timers and any training run. The stored profile is kept."""
        self._fire(Trigger.STOP)
        await self._cancel_countdown()
        await self._cancel_evaluation()

    async def wait_for_evaluation(self):
        task = self._evaluation_task
        if task is not None:
            await task

    def set_sensitivity(self, sensitivity):
        if sensitivity not in SENSITIVITIES:
            raise ValueError(f"Unknown sensitivity '{sensitivity}'")
        self.sensitivity = sensitivity
        self.status = self._classify()

    # --- event ingestion ---

    def ingest(self, event) -> Optional[ScoreResult]:
        """
        Feeds one event into the session. Returns the score while detecting,
        otherwise None.
        """
        if self.phase is Phase.IDLE:
            logger.debug("Event ignored while idle")
            return None
        if self.phase is Phase.EVALUATING:
            self._pending.append(event)
            return None

        self.counters.update(event.counter_keys())

        if self.phase is Phase.TRAINING:
            self._buffer.append(event)
            self._recent.append(event)
            return None

        result = score_event(self._profile, event, list(self._recent), self.sensitivity, self.config)
        self._recent.append(event)
        if result.available:
            self.history.append(result.score)
            self.status = self._classify()
            if self.on_score is not None:
                self.on_score(result.score, self.sensitivity, self.status)
        return result

    # --- internals ---

    def _fire(self, trigger):
        previous = self.phase
        self.phase = next_phase(previous, trigger)
        if self.phase is not previous:
            logger.info(f"Session {self.session_id[:8]}: {previous.value} -> {self.phase.value} ({trigger.value})")
        return self.phase

    def _classify(self):
        return classify_status(
            self.history, self.sensitivity,
            min_history=self.config.status_min_history, window=self.config.status_window,
        )

    def _emit_progress(self, phase, percent, message):
        logger.debug(f"[{phase}] {percent}% {message}")
        if self.on_progress is not None:
            self.on_progress(phase, percent, message)

    def _activate(self, profile):
        self._profile = profile
        self.history.clear()
        self.status = UserStatus.ANALYZING
        self._fire(Trigger.MODEL_READY)

    async def _begin_training(self):
        if self._evaluation_task is not None and not self._evaluation_task.done():
            logger.warning("Training not started: an evaluation is still in flight")
            return
        self._fire(Trigger.BEGIN_TRAINING)
        if self.phase is Phase.TRAINING:
            self._arm_countdown()

    def _arm_countdown(self):
        if self._countdown_task is not None:
            self._countdown_task.cancel()
        self.remaining = self.config.training_period_seconds
        self._countdown_task = asyncio.create_task(self._run_countdown())

    async def _run_countdown(self):
        total = self.config.training_period_seconds
        while self.remaining > 0:
            await asyncio.sleep(self.tick_seconds)
            self.remaining -= 1
            self._emit_progress(
                "collecting", int((total - self.remaining) * 100 / total),
                f"{self.remaining}s remaining, {len(self._buffer)} samples",
            )
        self._countdown_task = None
        self._start_evaluation(Trigger.COUNTDOWN_ELAPSED)

    async def _cancel_countdown(self):
        task, self._countdown_task = self._countdown_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _cancel_evaluation(self):
        task = self._evaluation_task
        if task is not None and not task.done():
            self._cancel.set()
            await task
        self._evaluation_task = None
        self._cancel = threading.Event()

    def _start_evaluation(self, trigger):
        if self._evaluation_task is not None and not self._evaluation_task.done():
            return
        if self._fire(trigger) is not Phase.EVALUATING:
            return
        self._evaluation_task = asyncio.create_task(
            self._evaluate(self.session_id, list(self._buffer), self._cancel)
        )

    async def _evaluate(self, session_id, events, cancel):
        loop = asyncio.get_running_loop()

        def progress(phase, percent, message):
            loop.call_soon_threadsafe(self._emit_progress, phase, percent, message)

        profile = None
        try:
            profile = await asyncio.to_thread(train_profile, events, self.config, progress, cancel.is_set)
            trigger = Trigger.TRAINING_SUCCEEDED
        except InsufficientData as e:
            logger.warning(f"{e}; extending the training window")
            self._emit_progress("insufficient_data", 0, str(e))
            trigger = Trigger.INSUFFICIENT_DATA
        except TrainingCancelled:
            logger.info("Training cancelled")
            return
        except TrainingFailure as e:
            logger.error(f"Training failed: {e}")
            self._emit_progress("failed", 0, str(e))
            trigger = Trigger.TRAINING_FAILED
        except Exception as e:
            logger.error(f"Unexpected error while training: {e!r}")
            self._emit_progress("failed", 0, str(e))
            trigger = Trigger.TRAINING_FAILED

        # Superseded by a reset or teardown while training
        if cancel.is_set() or session_id != self.session_id:
            return

        if profile is not None:
            self._profile = profile
            self.history.clear()
            self.status = UserStatus.ANALYZING
            self._fire(trigger)
            async with self._store_lock:
                try:
                    await asyncio.to_thread(self.store.save, profile)
                except StoreIOFailure as e:
                    logger.error(f"Profile kept in memory only: {e}")
        else:
            self._fire(trigger)
            self._arm_countdown()

        pending, self._pending = self._pending, []
        for event in pending:
            self.ingest(event)
