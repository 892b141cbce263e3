"""Coordinate enabling, disabling and repairing the patch for one binary."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from app.config import PatchEngineConfig
from services.online_patch.assessment import PatchAssessment, assess
from services.online_patch.constants import (
    ORIGINAL_CACHE_KEY_PREFIX,
    PATCH_CACHE_KEY_PREFIX,
    TEMP_ORIGINAL_LABEL,
)
from services.online_patch.fetcher import CancelToken, ResourceFetcher, with_cache_buster
from services.online_patch.guard import OperationGuard
from services.online_patch.hashing import (
    calculate_sha256,
    file_matches,
    hashes_match,
    normalize_hash,
)
from services.online_patch.models import (
    AggregateProgress,
    BackupUnavailableError,
    BinaryTarget,
    CheckOutcome,
    DigestError,
    DisableOutcome,
    EnableOutcome,
    FixOutcome,
    PatchCondition,
    PatchDescriptor,
    PatchHealth,
    PatchIntegrityError,
    PatchState,
    PatchStatus,
    PatchWorkspace,
    ProgressPhase,
)
from services.online_patch.progress import ProgressListener, ProgressReporter
from services.online_patch.state_store import read_state, write_state
from services.online_patch.swap import (
    copy_replace,
    ensure_dirs,
    move_replace,
    remove_tree,
    unlink_if_exists,
)
from services.online_patch.workspace import resolve_workspace, scratch_path

_LOGGER = logging.getLogger(__name__)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class PatchCoordinator:
    """Toggle one live binary between its original and patched variants.

    Every operation re-resolves the workspace, reads the state claim and
    digests the live binary exactly once, then dispatches on the resulting
    :class:`PatchCondition`.  State is only written after a verified swap, so
    any failure leaves the live binary and the state file as they were.
    """

    def __init__(
        self,
        fetcher: ResourceFetcher,
        *,
        config: PatchEngineConfig | None = None,
        clock: Callable[[], int] | None = None,
        guard: OperationGuard | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._config = config or PatchEngineConfig()
        self._clock = clock or _now_ms
        self._guard = guard or OperationGuard()

    @property
    def guard(self) -> OperationGuard:
        return self._guard

    def workspace_for(self, target: BinaryTarget) -> PatchWorkspace:
        return resolve_workspace(
            target.path,
            root_dirname=self._config.workspace_dirname,
            state_filename=self._config.state_filename,
            stamp=self._clock(),
        )

    def assess(self, target: BinaryTarget, descriptor: PatchDescriptor) -> PatchAssessment:
        """Return the current condition of ``target`` without modifying anything."""

        workspace = self.workspace_for(target)
        state = read_state(workspace.state_path)
        return assess(state, calculate_sha256(target.path), descriptor.expected_patch_hash)

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------
    def enable(
        self,
        target: BinaryTarget,
        descriptor: PatchDescriptor,
        *,
        listener: ProgressListener | None = None,
        aggregate: AggregateProgress | None = None,
        cancel_token: CancelToken | None = None,
    ) -> EnableOutcome:
        if not descriptor.is_patchable:
            _LOGGER.info("No patch published for %s; skipping enable", target.label)
            return EnableOutcome.SKIPPED
        if not target.path.exists():
            _LOGGER.info("Binary %s is missing; skipping enable", target.path)
            return EnableOutcome.SKIPPED

        reporter = ProgressReporter(listener, ProgressPhase.ENABLING, aggregate)
        with self._guard.hold(target.path):
            return self._enable(target, descriptor, reporter, cancel_token)

    def disable(
        self,
        target: BinaryTarget,
        descriptor: PatchDescriptor,
        *,
        listener: ProgressListener | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DisableOutcome:
        if not descriptor.is_patchable:
            _LOGGER.info("No patch published for %s; skipping disable", target.label)
            return DisableOutcome.SKIPPED
        if not target.path.exists():
            _LOGGER.info("Binary %s is missing; skipping disable", target.path)
            return DisableOutcome.SKIPPED

        reporter = ProgressReporter(listener, ProgressPhase.DISABLING)
        with self._guard.hold(target.path):
            return self._disable(target, descriptor, reporter, cancel_token)

    def fix(
        self,
        target: BinaryTarget,
        descriptor: PatchDescriptor,
        *,
        listener: ProgressListener | None = None,
        cancel_token: CancelToken | None = None,
    ) -> FixOutcome:
        if not descriptor.expected_patch_hash:
            return FixOutcome.SKIPPED
        if not target.path.exists():
            _LOGGER.info("Binary %s is missing; skipping fix", target.path)
            return FixOutcome.SKIPPED

        reporter = ProgressReporter(listener, ProgressPhase.DISABLING)
        with self._guard.hold(target.path):
            return self._fix(target, descriptor, reporter, cancel_token)

    def _enable(
        self,
        target: BinaryTarget,
        descriptor: PatchDescriptor,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> EnableOutcome:
        workspace = self.workspace_for(target)
        assessment = assess(
            read_state(workspace.state_path),
            calculate_sha256(target.path),
            descriptor.expected_patch_hash,
        )
        _LOGGER.info("Enabling patch for %s (condition=%s)", target.label, assessment.condition.value)

        if assessment.live_matches_expected:
            if not assessment.claims_enabled or assessment.condition is PatchCondition.OUTDATED:
                self._persist(workspace, descriptor, assessment, enabled=True)
            _LOGGER.info("Patch already active for %s", target.label)
            return EnableOutcome.ALREADY_ENABLED

        ensure_dirs(workspace.root, *workspace.slot_dirs)
        self._ensure_patched_slot(workspace, descriptor, assessment, reporter, cancel_token)
        reporter.indeterminate()
        self._preserve_original(target, workspace, descriptor, assessment, reporter, cancel_token)

        copy_replace(workspace.patched_slot, target.path)
        reporter.finish()
        self._persist(workspace, descriptor, assessment, enabled=True)
        _LOGGER.info("Enabled patch for %s", target.label)
        return EnableOutcome.ENABLED

    def _disable(
        self,
        target: BinaryTarget,
        descriptor: PatchDescriptor,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> DisableOutcome:
        workspace = self.workspace_for(target)
        assessment = assess(
            read_state(workspace.state_path),
            calculate_sha256(target.path),
            descriptor.expected_patch_hash,
        )
        _LOGGER.info(
            "Disabling patch for %s (condition=%s)", target.label, assessment.condition.value
        )
        if assessment.condition is PatchCondition.DISABLED:
            return DisableOutcome.ALREADY_DISABLED

        ensure_dirs(workspace.root, *workspace.slot_dirs)
        self._ensure_original_slot(target, workspace, descriptor, assessment, reporter, cancel_token)
        reporter.indeterminate()

        if assessment.live_is_patched:
            copy_replace(target.path, workspace.patched_slot)
        copy_replace(workspace.original_slot, target.path)
        reporter.finish()
        self._persist(workspace, descriptor, assessment, enabled=False)

        if file_matches(target.path, descriptor.expected_patch_hash):
            raise PatchIntegrityError(
                f"Unpatch completed but {target.label} still has the patch hash. Use fix."
            )

        if remove_tree(workspace.root):
            _LOGGER.debug("Purged patch workspace %s", workspace.root)
        _LOGGER.info("Disabled patch for %s", target.label)
        return DisableOutcome.DISABLED

    def _fix(
        self,
        target: BinaryTarget,
        descriptor: PatchDescriptor,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> FixOutcome:
        workspace = self.workspace_for(target)
        assessment = assess(
            read_state(workspace.state_path),
            calculate_sha256(target.path),
            descriptor.expected_patch_hash,
        )
        if not (
            assessment.live_matches_expected
            or assessment.condition is PatchCondition.DRIFTED
        ):
            _LOGGER.info("%s is not patched; no fix needed", target.label)
            return FixOutcome.NOT_NEEDED

        original_url = descriptor.original_url
        if not original_url:
            raise BackupUnavailableError(
                f"Missing original_url for this build. Cannot fix {target.label}."
            )

        _LOGGER.info("Fixing drifted %s (condition=%s)", target.label, assessment.condition.value)
        ensure_dirs(workspace.root, *workspace.slot_dirs)
        # The original slot is not trusted here; always fetch a fresh copy.
        fresh_original = self._download_original(
            target, workspace, original_url, assessment, reporter, cancel_token
        )
        reporter.indeterminate()

        try:
            if assessment.live_matches_expected and not workspace.patched_slot.exists():
                copy_replace(target.path, workspace.patched_slot)
            copy_replace(fresh_original, workspace.original_slot)
            move_replace(fresh_original, target.path)
        finally:
            unlink_if_exists(fresh_original)

        reporter.finish()
        self._persist(workspace, descriptor, assessment, enabled=False, original_url=original_url)
        _LOGGER.info("Restored original %s", target.label)
        return FixOutcome.FIXED

    # ------------------------------------------------------------------
    # Read-mostly operations
    # ------------------------------------------------------------------
    def health(self, target: BinaryTarget, descriptor: PatchDescriptor) -> PatchHealth:
        """Reconcile the state claim with the live digest without network I/O.

        Only the ``enabled`` flag is ever repaired, and only when the local
        evidence is unambiguous.
        """

        if not descriptor.is_patchable or not target.path.exists():
            return PatchHealth()

        workspace = self.workspace_for(target)
        state = read_state(workspace.state_path)
        try:
            live_hash: str | None = calculate_sha256(target.path)
        except DigestError:
            _LOGGER.warning("Unable to hash %s during health check", target.path, exc_info=True)
            live_hash = None
        assessment = assess(state, live_hash, descriptor.expected_patch_hash)

        enabled = assessment.claims_enabled
        patched = assessment.live_is_patched
        detect_hash = assessment.recorded_hash or descriptor.expected_patch_hash

        if state is not None and not self._guard.is_busy(target.path):
            if not state.enabled and patched and self._slot_matches(workspace.patched_slot, detect_hash):
                enabled = self._repair_flag(workspace, state, True)
            elif state.enabled and live_hash is not None and not patched and workspace.original_slot.exists():
                enabled = self._repair_flag(workspace, state, False)
        if state is None and patched:
            enabled = True

        patch_outdated = (
            enabled
            and bool(assessment.recorded_hash)
            and not hashes_match(assessment.recorded_hash, descriptor.expected_patch_hash)
        )
        return PatchHealth(
            enabled=enabled,
            client_is_patched=patched,
            needs_fix_client=assessment.condition is PatchCondition.DRIFTED,
            patch_outdated=patch_outdated,
        )

    def status(self, target: BinaryTarget, descriptor: PatchDescriptor) -> PatchStatus:
        available = descriptor.is_patchable
        if not available or not target.path.exists():
            return PatchStatus(available=available)
        workspace = self.workspace_for(target)
        state = read_state(workspace.state_path)
        return PatchStatus(
            available=True,
            enabled=state is not None and state.enabled,
            downloaded=workspace.patched_slot.exists(),
        )

    def check(self, target: BinaryTarget, descriptor: PatchDescriptor) -> CheckOutcome:
        if not descriptor.is_patchable or not target.path.exists():
            return CheckOutcome.SKIPPED
        try:
            if file_matches(target.path, descriptor.expected_patch_hash):
                return CheckOutcome.UP_TO_DATE
        except DigestError:
            _LOGGER.debug("Unable to hash %s; reporting patch as needed", target.path, exc_info=True)
        return CheckOutcome.NEEDS

    def needs_download(self, target: BinaryTarget, descriptor: PatchDescriptor) -> bool:
        """Return whether :meth:`enable` would have to download the patched variant."""

        if not descriptor.is_patchable or not target.path.exists():
            return False
        expected = descriptor.expected_patch_hash
        workspace = self.workspace_for(target)
        try:
            if file_matches(target.path, expected):
                return False
        except DigestError:
            return True
        if not workspace.patched_slot.exists():
            return True
        state = read_state(workspace.state_path)
        if state is not None and state.patch_hash and not hashes_match(state.patch_hash, expected):
            return True
        return not self._slot_matches(workspace.patched_slot, expected)

    # ------------------------------------------------------------------
    # Slot management
    # ------------------------------------------------------------------
    def _ensure_patched_slot(
        self,
        workspace: PatchWorkspace,
        descriptor: PatchDescriptor,
        assessment: PatchAssessment,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> None:
        expected = descriptor.expected_patch_hash
        slot = workspace.patched_slot
        if slot.exists():
            recorded = assessment.recorded_hash
            if (not recorded or hashes_match(recorded, expected)) and file_matches(slot, expected):
                _LOGGER.info("Reusing cached patched binary at %s", slot)
                return
            _LOGGER.info("Cached patched binary at %s is stale; downloading a fresh copy", slot)

        if descriptor.patch_url is None or expected is None:
            raise PatchIntegrityError(f"No patch is published for {slot.name}")
        temp = workspace.temp_download_path
        actual = self._download_and_hash(
            descriptor.patch_url,
            f"{PATCH_CACHE_KEY_PREFIX}-{normalize_hash(expected)}",
            temp,
            reporter,
            cancel_token,
        )
        if not hashes_match(actual, expected):
            unlink_if_exists(temp)
            raise PatchIntegrityError(
                f"Patch hash mismatch (SHA256). Expected {normalize_hash(expected)}, "
                f"got {normalize_hash(actual)}."
            )
        _LOGGER.info("Verified patched binary %s", normalize_hash(actual))
        move_replace(temp, slot)

    def _preserve_original(
        self,
        target: BinaryTarget,
        workspace: PatchWorkspace,
        descriptor: PatchDescriptor,
        assessment: PatchAssessment,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> None:
        slot = workspace.original_slot
        if slot.exists():
            slot_hash = calculate_sha256(slot)
            if self._is_patch_hash(slot_hash, assessment):
                self._replace_poisoned_original(
                    target, workspace, descriptor, assessment, reporter, cancel_token
                )
                return
            if assessment.live_is_patched or hashes_match(slot_hash, assessment.live_hash):
                return
            # The live binary is an unpatched build the backup does not hold.
            _LOGGER.info(
                "Original backup %s is stale; refreshing it from %s", slot, target.label
            )
            copy_replace(target.path, slot)
            return

        if assessment.live_is_patched:
            # Live content is a patch, so the only true original is remote.
            original_url = self._original_url(descriptor, assessment)
            if not original_url:
                raise BackupUnavailableError(
                    f"Cannot preserve original: {target.label} is already patched "
                    "and original_url is missing."
                )
            fresh = self._download_original(
                target, workspace, original_url, assessment, reporter, cancel_token
            )
            move_replace(fresh, slot)
            return

        _LOGGER.info("Backing up original %s to %s", target.label, slot)
        copy_replace(target.path, slot)

    def _ensure_original_slot(
        self,
        target: BinaryTarget,
        workspace: PatchWorkspace,
        descriptor: PatchDescriptor,
        assessment: PatchAssessment,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> None:
        slot = workspace.original_slot
        if slot.exists():
            if self._is_poisoned(slot, assessment):
                self._replace_poisoned_original(
                    target, workspace, descriptor, assessment, reporter, cancel_token
                )
            return

        original_url = self._original_url(descriptor, assessment)
        if not original_url:
            raise BackupUnavailableError(
                f"Original {target.label} backup not found. Reinstall the game to restore it."
            )
        fresh = self._download_original(target, workspace, original_url, assessment, reporter, cancel_token)
        move_replace(fresh, slot)

    def _replace_poisoned_original(
        self,
        target: BinaryTarget,
        workspace: PatchWorkspace,
        descriptor: PatchDescriptor,
        assessment: PatchAssessment,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> None:
        _LOGGER.warning(
            "Original backup %s matches a patch hash; discarding it", workspace.original_slot
        )
        original_url = self._original_url(descriptor, assessment)
        if not original_url:
            raise BackupUnavailableError(
                f"Original {target.label} backup is invalid and original_url is missing."
            )
        fresh = self._download_original(target, workspace, original_url, assessment, reporter, cancel_token)
        move_replace(fresh, workspace.original_slot)

    def _download_original(
        self,
        target: BinaryTarget,
        workspace: PatchWorkspace,
        url: str,
        assessment: PatchAssessment,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> Path:
        temp = scratch_path(workspace.root, TEMP_ORIGINAL_LABEL, target.path.name, stamp=self._clock())
        actual = self._download_and_hash(
            url,
            f"{ORIGINAL_CACHE_KEY_PREFIX}-{self._clock()}",
            temp,
            reporter,
            cancel_token,
        )
        if any(hashes_match(actual, patch_hash) for patch_hash in assessment.patch_hashes):
            unlink_if_exists(temp)
            raise PatchIntegrityError(
                f"Original download for {target.label} matches the patch hash; refusing to use it."
            )
        _LOGGER.info("Verified original %s download %s", target.label, normalize_hash(actual))
        return temp

    def _download_and_hash(
        self,
        url: str,
        cache_key: str,
        destination: Path,
        reporter: ProgressReporter,
        cancel_token: CancelToken | None,
    ) -> str:
        busted = with_cache_buster(url, cache_key, param=self._config.cache_buster_param)
        reporter.start()
        self._fetcher.download(
            busted,
            destination,
            timeout=self._config.fetch_timeout_seconds,
            on_bytes=reporter.advance,
            cancel_token=cancel_token,
        )
        try:
            return calculate_sha256(destination)
        except DigestError:
            unlink_if_exists(destination)
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _is_poisoned(self, slot: Path, assessment: PatchAssessment) -> bool:
        return self._is_patch_hash(calculate_sha256(slot), assessment)

    @staticmethod
    def _is_patch_hash(digest: str, assessment: PatchAssessment) -> bool:
        return any(hashes_match(digest, patch_hash) for patch_hash in assessment.patch_hashes)

    def _slot_matches(self, slot: Path, expected: str | None) -> bool:
        if not slot.exists():
            return False
        try:
            return file_matches(slot, expected)
        except DigestError:
            _LOGGER.debug("Unable to hash cached slot %s", slot, exc_info=True)
            return False

    @staticmethod
    def _original_url(descriptor: PatchDescriptor, assessment: PatchAssessment) -> str | None:
        if descriptor.original_url:
            return descriptor.original_url
        if assessment.state is not None:
            return assessment.state.original_url
        return None

    def _persist(
        self,
        workspace: PatchWorkspace,
        descriptor: PatchDescriptor,
        assessment: PatchAssessment,
        *,
        enabled: bool,
        original_url: str | None = None,
    ) -> None:
        state = PatchState(
            enabled=enabled,
            patch_hash=descriptor.expected_patch_hash,
            patch_url=descriptor.patch_url,
            original_url=original_url or self._original_url(descriptor, assessment),
            note=descriptor.note,
            updated_at=self._clock(),
        )
        write_state(workspace.state_path, state)

    def _repair_flag(self, workspace: PatchWorkspace, state: PatchState, enabled: bool) -> bool:
        _LOGGER.info(
            "Repairing patch state at %s: enabled %s -> %s",
            workspace.state_path,
            state.enabled,
            enabled,
        )
        try:
            write_state(workspace.state_path, state.with_enabled(enabled, updated_at=self._clock()))
        except OSError:
            _LOGGER.warning("Unable to repair patch state at %s", workspace.state_path, exc_info=True)
        return enabled


__all__ = ["PatchCoordinator"]
