from __future__ import annotations

from pathlib import Path

from services.online_patch.workspace import resolve_workspace, scratch_path


def test_resolve_workspace_places_slots_beside_binary(tmp_path: Path) -> None:
    binary = tmp_path / "game" / "client.exe"

    workspace = resolve_workspace(binary, stamp=1234)

    root = tmp_path / "game" / ".online-patch"
    assert workspace.root == root
    assert workspace.original_slot == root / "original" / "client.exe"
    assert workspace.patched_slot == root / "patched" / "client.exe"
    assert workspace.state_path == root / "state.json"
    assert workspace.temp_download_path == root / "temp_patch_download_1234_client.exe"
    assert workspace.slot_dirs == (root / "original", root / "patched")


def test_resolve_workspace_is_pure_and_deterministic(tmp_path: Path) -> None:
    binary = tmp_path / "game" / "client.exe"

    first = resolve_workspace(binary, stamp=1)
    second = resolve_workspace(binary, stamp=2)

    assert not (tmp_path / "game").exists()
    assert first.original_slot == second.original_slot
    assert first.patched_slot == second.patched_slot
    assert first.state_path == second.state_path
    assert first.temp_download_path != second.temp_download_path


def test_resolve_workspace_honours_custom_names(tmp_path: Path) -> None:
    workspace = resolve_workspace(
        tmp_path / "server.bin",
        root_dirname=".patches",
        state_filename="patch-state.json",
        stamp=7,
    )

    assert workspace.root == tmp_path / ".patches"
    assert workspace.state_path == tmp_path / ".patches" / "patch-state.json"


def test_scratch_path_defaults_to_current_time(tmp_path: Path) -> None:
    path = scratch_path(tmp_path, "original", "client.exe")

    prefix, label, stamp, exe_name = path.name.split("_", 3)
    assert (prefix, label, exe_name) == ("temp", "original", "client.exe")
    assert stamp.isdigit()
    assert path.parent == tmp_path
