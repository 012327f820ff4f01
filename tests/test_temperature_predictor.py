"""Tests for the per-room prediction model."""

from datetime import timedelta

import numpy as np
import pytest

from core.heatwise.exceptions import TrainingError
from core.heatwise.heating_history import HeatingHistoryService
from core.heatwise.storage import ModelFileStore
from core.heatwise.temperature_predictor import AITemperaturePredictor, normalize_training_data
from tests.helpers import START, record_cycles

ROOM = "livingroom"


@pytest.fixture
def history():
    history = HeatingHistoryService()
    record_cycles(history, ROOM, 4)
    return history


@pytest.fixture
def training_data(history):
    return history.generate_training_data(ROOM)


@pytest.fixture
def predictor(ai_settings, tmp_path):
    return AITemperaturePredictor(ai_settings, ModelFileStore(str(tmp_path)))


class TestNormalization:
    def test_shapes_and_stats(self, training_data):
        inputs, outputs, stats = normalize_training_data(training_data)
        assert inputs.shape == (20, 8)
        assert outputs.shape == (20, 3)
        assert len(stats["mean"]) == 8
        assert np.allclose(outputs[:, 1], outputs[:, 0] * 2)

    def test_constant_feature_keeps_unit_std(self, training_data):
        _, _, stats = normalize_training_data(training_data)
        # Target temperature is constant across the samples
        assert stats["std"][1] == 1.0
        # Missing outside temperature falls back to 15
        assert stats["mean"][5] == pytest.approx(15.0)


class TestTraining:
    @pytest.mark.asyncio
    async def test_insufficient_data(self, predictor, training_data):
        assert await predictor.train_model(ROOM, training_data[:5], now=START) is False
        assert not predictor.is_model_ready(ROOM)

    @pytest.mark.asyncio
    async def test_train_and_persist(self, predictor, training_data, tmp_path):
        assert await predictor.train_model(ROOM, training_data, now=START) is True
        assert predictor.is_model_ready(ROOM)
        assert (tmp_path / f"{ROOM}_model.pkl").exists()
        assert (tmp_path / f"{ROOM}_stats.json").exists()

        info = predictor.get_model_info(ROOM)
        assert info == {"ready": True, "training": False, "last_trained": START.isoformat()}

    @pytest.mark.asyncio
    async def test_retraining_is_rate_limited(self, predictor, training_data):
        assert await predictor.train_model(ROOM, training_data, now=START)
        assert await predictor.train_model(ROOM, training_data, now=START + timedelta(minutes=59)) is False
        assert await predictor.train_model(ROOM, training_data, now=START + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_in_flight_training_is_refused(self, predictor, training_data):
        predictor._training[ROOM] = True
        assert await predictor.train_model(ROOM, training_data, now=START) is False
        assert not predictor.is_model_ready(ROOM)

    @pytest.mark.asyncio
    async def test_failed_training_keeps_previous_model(self, predictor, training_data, monkeypatch):
        assert await predictor.train_model(ROOM, training_data, now=START)
        previous = predictor.models[ROOM]

        def fail(room, inputs, outputs):
            raise TrainingError("boom")

        monkeypatch.setattr(predictor, "_fit", fail)
        assert await predictor.train_model(ROOM, training_data, now=START + timedelta(hours=2)) is False
        assert predictor.models[ROOM] is previous
        assert predictor.is_model_ready(ROOM)


class TestPrediction:
    @pytest.mark.asyncio
    async def test_no_model(self, predictor):
        assert await predictor.predict(ROOM, 20.0, 21.0, 10.0, 1.0) is None

    @pytest.mark.asyncio
    async def test_prediction_fields(self, predictor, training_data, history):
        await predictor.train_model(ROOM, training_data, now=START)
        profile = history.get_room_profile(ROOM)

        prediction = await predictor.predict(ROOM, 20.0, 21.0, 20.0, 2.4, profile=profile, now=START)
        assert prediction is not None
        assert prediction.confidence == profile.confidence
        assert prediction.should_stop_heating == (0 < 1.0 <= prediction.stop_offset)
        assert np.isfinite(prediction.predicted_temp_in_30_min)
        assert np.isfinite(prediction.predicted_temp_in_60_min)

    @pytest.mark.asyncio
    async def test_default_confidence_without_profile(self, predictor, training_data):
        await predictor.train_model(ROOM, training_data, now=START)
        prediction = await predictor.predict(ROOM, 20.0, 21.0, 20.0, 2.4, now=START)
        assert prediction.confidence == 0.5

    @pytest.mark.asyncio
    async def test_load_model_from_store(self, predictor, training_data, ai_settings, tmp_path):
        await predictor.train_model(ROOM, training_data, now=START)
        expected = await predictor.predict(ROOM, 20.0, 21.0, 20.0, 2.4, now=START)

        fresh = AITemperaturePredictor(ai_settings, ModelFileStore(str(tmp_path)))
        assert await fresh.load_model(ROOM)
        assert await fresh.load_model("attic") is False
        loaded = await fresh.predict(ROOM, 20.0, 21.0, 20.0, 2.4, now=START)
        assert loaded.predicted_temp_in_30_min == pytest.approx(expected.predicted_temp_in_30_min)

    @pytest.mark.asyncio
    async def test_dispose(self, predictor, training_data):
        await predictor.train_model(ROOM, training_data, now=START)
        predictor.dispose()
        assert not predictor.is_model_ready(ROOM)
        assert await predictor.predict(ROOM, 20.0, 21.0, 20.0, 2.4) is None
