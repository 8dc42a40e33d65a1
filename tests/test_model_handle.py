"""Tests for the guarded model handle, run in-process."""

import threading
import time

import numpy as np
import pytest

from modelshare.errors import InitializationError, InvalidInputError
from modelshare.shared import HandleState, ModelHandle, resolve_factory

from fakes import (
    INPUT_SHAPE,
    LABELS,
    BrokenLoadClassifier,
    ExplodingClassifier,
    FakeClassifier,
    RecordingClassifier,
    SlowClassifier,
)


def _ready_handle(model=None):
    model = model or FakeClassifier()
    handle = ModelHandle(lambda: model, INPUT_SHAPE)
    handle.initialize()
    return handle, model


class TestInitialize:
    def test_starts_uninitialized(self):
        handle = ModelHandle(FakeClassifier, INPUT_SHAPE)
        assert handle.is_ready() is False
        assert handle.info()["state"] == HandleState.UNINITIALIZED.value
        assert handle.labels() == []

    def test_initialize_loads_model(self):
        handle = ModelHandle(FakeClassifier, INPUT_SHAPE)
        handle.initialize()
        assert handle.is_ready() is True
        assert handle.labels() == LABELS
        info = handle.info()
        assert info["state"] == "ready"
        assert info["model"] == "fake-classifier"
        assert info["num_classes"] == len(LABELS)
        assert info["input_shape"] == list(INPUT_SHAPE)

    def test_second_initialize_fails(self):
        handle, _ = _ready_handle()
        with pytest.raises(InitializationError, match="already initialized"):
            handle.initialize()

    def test_load_failure_is_initialization_error(self):
        handle = ModelHandle(BrokenLoadClassifier, INPUT_SHAPE)
        with pytest.raises(InitializationError, match="weights not found"):
            handle.initialize()
        assert handle.is_ready() is False

    def test_import_string_factory(self):
        handle = ModelHandle("fakes:FakeClassifier", INPUT_SHAPE)
        handle.initialize()
        assert handle.is_ready()

    @pytest.mark.parametrize(
        "factory", ["no_colon_here", "fakes:DoesNotExist", "no_such_module:thing", "fakes:LABELS"]
    )
    def test_bad_factory_string(self, factory):
        with pytest.raises(InitializationError):
            resolve_factory(factory)


class TestPredict:
    def test_predict_before_initialize_fails(self, image):
        handle = ModelHandle(FakeClassifier, INPUT_SHAPE)
        with pytest.raises(InitializationError, match="not initialized"):
            handle.predict(image)

    def test_returns_distribution_over_known_classes(self, image):
        handle, _ = _ready_handle()
        probs = handle.predict(image)
        assert len(probs) == len(LABELS)
        assert all(isinstance(p, float) for p in probs)
        assert sum(probs) == pytest.approx(1.0, abs=1e-6)

    def test_float_input_accepted(self, image):
        handle, _ = _ready_handle()
        probs = handle.predict(image.astype(np.float32) / 255.0)
        assert sum(probs) == pytest.approx(1.0, abs=1e-6)

    @pytest.mark.parametrize(
        "bad_input",
        [
            np.zeros((4, 4, 3), dtype=np.uint8),
            np.zeros((8, 8), dtype=np.uint8),
            np.zeros((8, 8, 3, 1), dtype=np.uint8),
            np.zeros(INPUT_SHAPE, dtype=bool),
            np.full(INPUT_SHAPE, "x"),
            np.full(INPUT_SHAPE, np.nan, dtype=np.float32),
            [[0] * 3] * 8,
            "not an image",
            None,
        ],
    )
    def test_invalid_input_performs_no_inference(self, bad_input):
        handle, _ = _ready_handle()
        with pytest.raises(InvalidInputError):
            handle.predict(bad_input)
        assert handle.info()["predictions"] == 0

    def test_invalid_input_is_value_error(self):
        handle, _ = _ready_handle()
        with pytest.raises(ValueError):
            handle.predict(np.zeros((1, 1, 1)))

    def test_guard_released_after_failure(self, image):
        handle, _ = _ready_handle(ExplodingClassifier())
        with pytest.raises(RuntimeError, match="crashed"):
            handle.predict(image)
        assert handle.info()["busy"] is False
        # A second call reaches the model again instead of deadlocking
        with pytest.raises(RuntimeError):
            handle.predict(image)


class TestGuard:
    def test_at_most_one_inference_in_flight(self, image):
        delay = 0.05
        callers = 4
        handle, model = _ready_handle(SlowClassifier(delay=delay))
        errors = []

        def call():
            try:
                handle.predict(image)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=call) for _ in range(callers)]
        start = time.monotonic()
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        elapsed = time.monotonic() - start

        assert errors == []
        assert model.max_active == 1
        assert elapsed >= callers * delay * 0.95
        assert handle.info()["predictions"] == callers


class TestRelease:
    def test_release_cleans_up_model(self, image):
        handle, model = _ready_handle(RecordingClassifier())

        handle.release()

        assert model.cleanups == 1
        assert model._model is None
        assert handle.is_ready() is False
        assert handle.info()["state"] == HandleState.RELEASED.value
        assert handle.labels() == []
        with pytest.raises(InitializationError, match="not initialized"):
            handle.predict(image)

    def test_release_twice_cleans_up_once(self):
        handle, model = _ready_handle(RecordingClassifier())
        handle.release()
        handle.release()
        assert model.cleanups == 1

    def test_released_handle_cannot_be_reinitialized(self):
        handle, _ = _ready_handle()
        handle.release()
        with pytest.raises(InitializationError, match="released"):
            handle.initialize()

    def test_release_before_initialize(self):
        handle = ModelHandle(RecordingClassifier, INPUT_SHAPE)
        handle.release()
        assert handle.info()["state"] == "released"

    def test_release_waits_for_inference_in_flight(self, image):
        handle, model = _ready_handle(SlowClassifier(delay=0.3))
        results = []
        worker = threading.Thread(target=lambda: results.append(handle.predict(image)))
        worker.start()
        time.sleep(0.1)

        handle.release()
        worker.join()

        assert len(results) == 1
        assert model.active == 0
