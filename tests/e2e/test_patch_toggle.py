from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from services.online_patch import (
    BinaryTarget,
    PatchCoordinator,
    PatchDescriptor,
    PatchError,
    PatchIntegrityError,
    calculate_sha256,
    hashes_match,
    read_state,
)
from tests.unit.patch_engine_test_utils import (
    ORIGINAL_BYTES,
    PATCH_URL,
    FakeFetcher,
    build_coordinator,
    client_descriptor,
    default_fetcher,
    install_binary,
    sha256_hex,
)

pytestmark = [pytest.mark.e2e]

scenarios("features/patch_toggle.feature")


@dataclass
class PatchToggleContext:
    root: Path
    fetcher: FakeFetcher = field(default_factory=default_fetcher)
    target: BinaryTarget | None = None
    descriptor: PatchDescriptor | None = None
    coordinator: PatchCoordinator | None = None
    initial_digest: str | None = None
    outcome: str | None = None
    failure: PatchError | None = None

    def require(self) -> tuple[PatchCoordinator, BinaryTarget, PatchDescriptor]:
        assert self.coordinator is not None
        assert self.target is not None
        assert self.descriptor is not None
        return self.coordinator, self.target, self.descriptor


@pytest.fixture
def patch_toggle(tmp_path: Path) -> PatchToggleContext:
    return PatchToggleContext(root=tmp_path)


@given("an unpatched client binary")
def unpatched_client(patch_toggle: PatchToggleContext) -> None:
    patch_toggle.target = install_binary(patch_toggle.root, "client.exe", ORIGINAL_BYTES)
    patch_toggle.initial_digest = calculate_sha256(patch_toggle.target.path)
    patch_toggle.coordinator = build_coordinator(patch_toggle.fetcher)


@given("a published patch with an original download")
def published_patch(patch_toggle: PatchToggleContext) -> None:
    patch_toggle.descriptor = client_descriptor()


@given("a published patch whose download is tampered")
def tampered_patch(patch_toggle: PatchToggleContext) -> None:
    patch_toggle.fetcher.resources[PATCH_URL] = b"<html>not the patch</html>"
    patch_toggle.descriptor = client_descriptor()


@when("the patch is enabled")
def enable_patch(patch_toggle: PatchToggleContext) -> None:
    coordinator, target, descriptor = patch_toggle.require()
    patch_toggle.outcome = coordinator.enable(target, descriptor).value


@when("the patch is enabled expecting a failure")
def enable_patch_failing(patch_toggle: PatchToggleContext) -> None:
    coordinator, target, descriptor = patch_toggle.require()
    with pytest.raises(PatchError) as excinfo:
        coordinator.enable(target, descriptor)
    patch_toggle.failure = excinfo.value


@when("the patch is disabled")
def disable_patch(patch_toggle: PatchToggleContext) -> None:
    coordinator, target, descriptor = patch_toggle.require()
    patch_toggle.outcome = coordinator.disable(target, descriptor).value


@then(parsers.parse('the outcome is "{outcome}"'))
def outcome_is(patch_toggle: PatchToggleContext, outcome: str) -> None:
    assert patch_toggle.outcome == outcome


@then("the live binary matches the published patch hash")
def live_is_patched(patch_toggle: PatchToggleContext) -> None:
    _, target, descriptor = patch_toggle.require()
    assert hashes_match(calculate_sha256(target.path), descriptor.expected_patch_hash)


@then("the live binary matches its pre-patch digest")
def live_is_original(patch_toggle: PatchToggleContext) -> None:
    _, target, _ = patch_toggle.require()
    assert hashes_match(calculate_sha256(target.path), patch_toggle.initial_digest)


@then("the original slot holds the pre-patch binary")
def original_slot_preserved(patch_toggle: PatchToggleContext) -> None:
    coordinator, target, _ = patch_toggle.require()
    slot = coordinator.workspace_for(target).original_slot
    assert hashes_match(calculate_sha256(slot), patch_toggle.initial_digest)


@then("the state claims the patch is enabled")
def state_enabled(patch_toggle: PatchToggleContext) -> None:
    coordinator, target, descriptor = patch_toggle.require()
    state = read_state(coordinator.workspace_for(target).state_path)
    assert state is not None
    assert state.enabled
    assert hashes_match(state.patch_hash, descriptor.expected_patch_hash)


@then("the state no longer claims the patch is enabled")
def state_disabled(patch_toggle: PatchToggleContext) -> None:
    coordinator, target, _ = patch_toggle.require()
    state = read_state(coordinator.workspace_for(target).state_path)
    assert state is None or not state.enabled


@then(parsers.parse("the patch was downloaded {count:d} time"))
def patch_download_count(patch_toggle: PatchToggleContext, count: int) -> None:
    assert len(patch_toggle.fetcher.downloads_of(PATCH_URL)) == count


@then("the failure is a patch integrity error")
def failure_is_integrity(patch_toggle: PatchToggleContext) -> None:
    assert isinstance(patch_toggle.failure, PatchIntegrityError)
    assert sha256_hex(b"<html>not the patch</html>").upper() in str(patch_toggle.failure)
