import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _isolate_runtime(monkeypatch):
    """Start every test with empty registries and no external side-effect sink."""
    from src.taskstream.infrastructure.session_registry import reset_registry
    from src.taskstream.services.side_effects import reset_side_effects

    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("TASKSTREAM_BEARER_TOKEN", raising=False)
    monkeypatch.delenv("TASKSTREAM_POST_ARTIFACT_TEXT", raising=False)
    monkeypatch.setenv("TASKSTREAM_SIDE_EFFECT_DELAY", "0")
    reset_registry()
    reset_side_effects()
    yield
    reset_registry()
    reset_side_effects()
