"""
Per-Room Temperature Predictor

Learns from closed heating cycles how far a room's temperature keeps moving
and how much it overshoots, using one small neural network per room:

    8 inputs:  current, target, difference, heating duration, recent rate,
               outside temperature, hour of day / 24, weekday / 7
    3 outputs: change in 30 min, change in 60 min, optimal stop offset

Inputs are standardised with per-feature mean/std stored next to the model.
"""

import asyncio
import logging
import warnings
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.metrics import mean_absolute_error
from sklearn.neural_network import MLPRegressor

from .exceptions import PersistenceError, TrainingError
from .heating_history import RoomThermalProfile, TrainingDataPoint
from .settings import AISettings
from .storage import ModelFileStore
from .time_utils import now_utc

logger = logging.getLogger(__name__)

MIN_RETRAINING_INTERVAL = timedelta(hours=1)
DEFAULT_OUTSIDE_TEMP = 15.0
DEFAULT_CONFIDENCE = 0.5
HIDDEN_LAYERS = (32, 24, 16)
BATCH_SIZE = 32


@dataclass
class HeatingPrediction:
    """Model output for one room at one point in time."""

    predicted_temp_in_30_min: float
    predicted_temp_in_60_min: float
    should_stop_heating: bool
    stop_offset: float
    confidence: float  # Data sufficiency of the room profile, not model certainty


def build_features(
    current_temp: float,
    target_temp: float,
    heating_duration: float,
    recent_rate: float,
    outside_temp: Optional[float],
    hour: int,
    weekday: int,
) -> list[float]:
    return [
        current_temp,
        target_temp,
        target_temp - current_temp,
        heating_duration,
        recent_rate,
        DEFAULT_OUTSIDE_TEMP if outside_temp is None else outside_temp,
        hour / 24,
        weekday / 7,
    ]


def normalize_training_data(data: list[TrainingDataPoint]) -> tuple[np.ndarray, np.ndarray, dict]:
    """Build standardised inputs, outputs and the normalisation stats."""
    inputs = np.array([
        build_features(
            p.current_temp,
            p.target_temp,
            p.heating_duration,
            p.recent_heating_rate,
            p.outside_temp,
            p.time_of_day,
            p.day_of_week,
        )
        for p in data
    ], dtype=float)
    # 60 minute change is extrapolated from the 30 minute label
    outputs = np.array([
        [p.future_temp_change, p.future_temp_change * 2, p.optimal_stop_offset]
        for p in data
    ], dtype=float)

    mean = inputs.mean(axis=0)
    std = inputs.std(axis=0)
    std[std == 0] = 1.0

    stats = {"mean": mean.tolist(), "std": std.tolist()}
    return (inputs - mean) / std, outputs, stats


class AITemperaturePredictor:
    """Trains, stores and queries one regression model per room."""

    def __init__(self, settings: AISettings, model_store: Optional[ModelFileStore] = None):
        self.settings = settings
        self.model_store = model_store

        self.models: dict[str, MLPRegressor] = {}
        self.stats: dict[str, dict] = {}
        self._training: dict[str, bool] = {}
        self._last_training: dict[str, datetime] = {}

    def _create_model(self, sample_count: int) -> MLPRegressor:
        return MLPRegressor(
            hidden_layer_sizes=HIDDEN_LAYERS,
            activation="relu",
            solver="adam",
            learning_rate_init=self.settings.ai_learning_rate,
            max_iter=self.settings.ai_training_epochs,
            batch_size=min(BATCH_SIZE, sample_count),
            shuffle=True,
        )

    def _fit(self, room: str, inputs: np.ndarray, outputs: np.ndarray) -> MLPRegressor:
        model = self._create_model(len(inputs))
        try:
            with warnings.catch_warnings():
                # Few epochs on small rooms rarely converge
                warnings.simplefilter("ignore", category=ConvergenceWarning)
                model.fit(inputs, outputs)
        except ValueError as e:
            raise TrainingError(f"Model fit failed for {room}: {e}") from e

        mae = mean_absolute_error(outputs, model.predict(inputs))
        logger.info(f"Training completed for {room}: loss={model.loss_:.4f}, mae={mae:.4f}")
        return model

    async def train_model(
        self,
        room: str,
        training_data: list[TrainingDataPoint],
        now: Optional[datetime] = None,
    ) -> bool:
        """Train a fresh model for the room.

        Refuses (returns False) with too little data, while a run for the room
        is in flight, or within an hour of the previous run. The previous model
        keeps serving until the new one is fitted.
        """
        now = now or now_utc()

        if len(training_data) < self.settings.ai_min_training_data:
            logger.debug(
                f"Insufficient training data for {room}: "
                f"{len(training_data)}/{self.settings.ai_min_training_data}"
            )
            return False

        if self._training.get(room):
            logger.debug(f"Model for {room} is already training")
            return False

        last = self._last_training.get(room)
        if last is not None and now - last < MIN_RETRAINING_INTERVAL:
            logger.debug(f"Too soon to retrain {room}")
            return False

        self._training[room] = True
        try:
            logger.info(f"Training model for {room} with {len(training_data)} samples")
            inputs, outputs, stats = normalize_training_data(training_data)
            model = await asyncio.to_thread(self._fit, room, inputs, outputs)

            self.models[room] = model
            self.stats[room] = stats
            self._save_model(room, model, stats)
            self._last_training[room] = now
            return True
        except Exception as e:
            logger.error(f"Training failed for {room}: {e}", exc_info=True)
            return False
        finally:
            self._training[room] = False

    def _save_model(self, room: str, model: MLPRegressor, stats: dict):
        if self.model_store is None:
            return
        try:
            self.model_store.save(room, model, stats)
        except PersistenceError as e:
            logger.error(f"Failed to save model for {room}: {e}")

    async def predict(
        self,
        room: str,
        current_temp: float,
        target_temp: float,
        heating_duration: float,
        recent_rate: float,
        profile: Optional[RoomThermalProfile] = None,
        outside_temp: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Optional[HeatingPrediction]:
        model = self.models.get(room)
        if model is None:
            logger.debug(f"No model available for {room}")
            return None

        try:
            local = (now or now_utc()).astimezone()
            features = np.array([build_features(
                current_temp,
                target_temp,
                heating_duration,
                recent_rate,
                outside_temp,
                local.hour,
                local.weekday(),
            )], dtype=float)

            stats = self.stats.get(room)
            if stats:
                features = (features - np.array(stats["mean"])) / np.array(stats["std"])

            change_30, change_60, stop_offset = (float(v) for v in model.predict(features)[0])
            temp_difference = target_temp - current_temp

            prediction = HeatingPrediction(
                predicted_temp_in_30_min=current_temp + change_30,
                predicted_temp_in_60_min=current_temp + change_60,
                should_stop_heating=0 < temp_difference <= stop_offset,
                stop_offset=stop_offset,
                confidence=profile.confidence if profile else DEFAULT_CONFIDENCE,
            )
        except Exception as e:
            logger.error(f"Prediction failed for {room}: {e}", exc_info=True)
            return None

        logger.debug(
            f"{room} prediction: current={current_temp:.2f}°C, target={target_temp:.2f}°C, "
            f"+30min={prediction.predicted_temp_in_30_min:.2f}°C, "
            f"stopOffset={prediction.stop_offset:.2f}°C, shouldStop={prediction.should_stop_heating}"
        )
        return prediction

    async def load_model(self, room: str) -> bool:
        if self.model_store is None:
            return False

        try:
            stored = await asyncio.to_thread(self.model_store.load, room)
        except PersistenceError as e:
            logger.warning(f"Could not load model for {room}: {e}")
            return False

        if stored is None:
            logger.debug(f"No stored model for {room}")
            return False

        self.models[room], self.stats[room] = stored
        logger.info(f"Model loaded for {room}")
        return True

    def is_model_ready(self, room: str) -> bool:
        return room in self.models and not self._training.get(room, False)

    def get_model_info(self, room: str) -> dict:
        last = self._last_training.get(room)
        return {
            "ready": self.is_model_ready(room),
            "training": self._training.get(room, False),
            "last_trained": last.isoformat() if last else None,
        }

    def dispose(self):
        """Drop every loaded model."""
        self.models.clear()
        self.stats.clear()
        self._training.clear()
        logger.info("Prediction models disposed")
