import os

import numpy as np
import pytest

from modelshare.service import MODEL_TYPE, create_host

from fakes import INPUT_SHAPE, FakeClassifier


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep MODELSHARE_* settings from the outer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("MODELSHARE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("MODELSHARE_CALL_TIMEOUT_SECONDS", "30")


@pytest.fixture
def host():
    host = create_host()
    host.start()
    try:
        yield host
    finally:
        host.shutdown()


@pytest.fixture
def model_proxy(host):
    proxy = host.create(MODEL_TYPE, FakeClassifier, INPUT_SHAPE)
    proxy.initialize()
    return proxy


@pytest.fixture
def image():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=INPUT_SHAPE, dtype=np.uint8)
