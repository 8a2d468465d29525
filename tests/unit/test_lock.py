"""Tests for the local state lock."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from lattice_provisioner.engine.errors import StateLockError
from lattice_provisioner.engine.lock import StateLock

if TYPE_CHECKING:
    from pathlib import Path


def test_lock_creates_lock_file(tmp_path: Path) -> None:
    state_path = tmp_path / "nested" / "state.json"

    with StateLock(state_path):
        assert (tmp_path / "nested" / "state.json.lock").exists()


def test_lock_is_reentrant_after_release(tmp_path: Path) -> None:
    state_path = tmp_path / "state.json"

    with StateLock(state_path):
        pass
    with StateLock(state_path):
        pass


def test_second_holder_times_out(tmp_path: Path) -> None:
    state_path = tmp_path / "state.json"

    with StateLock(state_path), pytest.raises(StateLockError, match="Timed out"):
        with StateLock(state_path, timeout=0.3):
            pass
