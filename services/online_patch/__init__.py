"""Public API for the online patch engine package."""

from __future__ import annotations

from services.online_patch.assessment import PatchAssessment, assess, classify_condition
from services.online_patch.builder import (
    build_dual_coordinator,
    build_fetcher,
    build_patch_coordinator,
)
from services.online_patch.coordinator import PatchCoordinator
from services.online_patch.dual import DualTargetCoordinator
from services.online_patch.fetcher import (
    CancelToken,
    ResourceFetcher,
    UrllibResourceFetcher,
    with_cache_buster,
)
from services.online_patch.guard import OperationGuard
from services.online_patch.hashing import calculate_sha256, hashes_match, normalize_hash
from services.online_patch.models import (
    STATE_SCHEMA_VERSION,
    AggregateProgress,
    BackupUnavailableError,
    BinaryTarget,
    CheckOutcome,
    DigestError,
    DisableOutcome,
    DownloadCancelledError,
    DownloadTimeoutError,
    DualDescriptors,
    DualOutcome,
    DualPatchHealth,
    EnableOutcome,
    FixOutcome,
    NetworkError,
    OperationInProgressError,
    PatchCondition,
    PatchDescriptor,
    PatchError,
    PatchHealth,
    PatchIntegrityError,
    PatchState,
    PatchStatus,
    PatchWorkspace,
    ProgressEvent,
    ProgressPhase,
    TargetKind,
    UnexpectedContentError,
)
from services.online_patch.progress import ProgressListener, ProgressReporter
from services.online_patch.state_store import read_state, write_state
from services.online_patch.swap import copy_replace, move_replace
from services.online_patch.workspace import resolve_workspace

__all__ = [
    "STATE_SCHEMA_VERSION",
    "AggregateProgress",
    "BackupUnavailableError",
    "BinaryTarget",
    "CancelToken",
    "CheckOutcome",
    "DigestError",
    "DisableOutcome",
    "DownloadCancelledError",
    "DownloadTimeoutError",
    "DualDescriptors",
    "DualOutcome",
    "DualPatchHealth",
    "DualTargetCoordinator",
    "EnableOutcome",
    "FixOutcome",
    "NetworkError",
    "OperationGuard",
    "OperationInProgressError",
    "PatchAssessment",
    "PatchCondition",
    "PatchCoordinator",
    "PatchDescriptor",
    "PatchError",
    "PatchHealth",
    "PatchIntegrityError",
    "PatchState",
    "PatchStatus",
    "PatchWorkspace",
    "ProgressEvent",
    "ProgressListener",
    "ProgressPhase",
    "ProgressReporter",
    "ResourceFetcher",
    "TargetKind",
    "UnexpectedContentError",
    "UrllibResourceFetcher",
    "assess",
    "build_dual_coordinator",
    "build_fetcher",
    "build_patch_coordinator",
    "calculate_sha256",
    "classify_condition",
    "copy_replace",
    "hashes_match",
    "move_replace",
    "normalize_hash",
    "read_state",
    "resolve_workspace",
    "with_cache_buster",
    "write_state",
]
