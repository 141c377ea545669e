"""Shared fixtures: a recording audio sink, a hand-driven clock, and an
engine factory that writes its config and presets into tmp_path."""

from __future__ import annotations

import random

import pytest

from openpeon.config import write_document
from openpeon.engine import PeonEngine
from openpeon.store import MappingStore


class RecordingSink:
    """AudioSink that remembers what it was asked to play."""

    def __init__(self) -> None:
        self.emitted: list[tuple[str, float]] = []
        self.disabled = False
        self.disabled_reason = ""

    def emit(self, sound_id: str, amplitude: float) -> None:
        if self.disabled:
            return
        self.emitted.append((sound_id, amplitude))

    @property
    def sounds(self) -> list[str]:
        return [s for s, _ in self.emitted]


class FakeClock:
    """Monotonic clock the test moves by hand (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def make_engine(tmp_path, clock):
    """Build a PeonEngine over documents written to tmp_path.

    ``raw=None`` leaves openpeon.yml absent so the defaults apply.
    """

    def _make(raw=None, presets=None, seed=0):
        config_path = tmp_path / "openpeon.yml"
        presets_dir = tmp_path / "presets"
        if raw is not None:
            write_document(str(config_path), raw)
        for name, doc in (presets or {}).items():
            write_document(str(presets_dir / f"{name}.yml"), doc)
        store = MappingStore.load(str(config_path), str(presets_dir))
        return PeonEngine(store, RecordingSink(), rng=random.Random(seed), clock=clock)

    return _make
