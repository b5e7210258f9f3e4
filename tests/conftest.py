"""
Shared pytest fixtures.

Every test gets a known configuration (a dummy Google key, the default CORS
origin) and a clean provider cache, so tests never reach a real model and
never see each other's state.
"""
from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def test_config(monkeypatch):
    import config
    from providers import manager

    monkeypatch.setattr(config, "CHAT_PROVIDER", "google")
    monkeypatch.setattr(config, "CHAT_MODEL", None)
    monkeypatch.setattr(config, "GOOGLE_GENERATIVE_AI_API_KEY", "test-google-key")
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", None)
    monkeypatch.setattr(config, "FRONTEND_URL", "http://localhost:5173")
    monkeypatch.setattr(config, "RATE_LIMIT_MAX_REQUESTS", 20)
    monkeypatch.setattr(config, "RATE_LIMIT_WINDOW_SECS", 60)
    manager.reset()
    yield config
    manager.reset()


def make_image_bytes(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    """Encode a solid-colour image of the given size."""
    color = (120, 80, 40, 255) if mode == "RGBA" else (120, 80, 40)
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    return make_image_bytes
