from __future__ import annotations

from pathlib import Path

import pytest

from services.online_patch.guard import OperationGuard
from services.online_patch.models import OperationInProgressError


def test_second_operation_on_same_binary_is_rejected(tmp_path: Path) -> None:
    guard = OperationGuard()
    binary = tmp_path / "client.exe"

    with guard.hold(binary):
        assert guard.is_busy(binary)
        with pytest.raises(OperationInProgressError, match="already in progress"):
            with guard.hold(tmp_path / "." / "client.exe"):
                pass

    assert not guard.is_busy(binary)


def test_distinct_binaries_can_run_concurrently(tmp_path: Path) -> None:
    guard = OperationGuard()

    with guard.hold(tmp_path / "client.exe"):
        with guard.hold(tmp_path / "server.bin"):
            assert guard.is_busy(tmp_path / "server.bin")


def test_guard_is_released_when_operation_fails(tmp_path: Path) -> None:
    guard = OperationGuard()
    binary = tmp_path / "client.exe"

    with pytest.raises(RuntimeError):
        with guard.hold(binary):
            raise RuntimeError("swap failed")

    with guard.hold(binary):
        pass
