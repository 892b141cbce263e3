"""Data models used by the online patch engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

STATE_SCHEMA_VERSION = 2


class TargetKind(str, Enum):
    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class BinaryTarget:
    """A live executable the launcher actually runs."""

    path: Path
    kind: TargetKind = TargetKind.CLIENT

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))

    @property
    def label(self) -> str:
        return f"{self.kind.value} {self.path.name}"


@dataclass(frozen=True)
class PatchDescriptor:
    """Describe where both binary variants live for one build.

    ``expected_patch_hash`` is the SHA-256 of the patched variant.  A missing
    URL means that variant cannot be recovered from the network, so the engine
    refuses to destroy the only local copy it has.
    """

    patch_url: str | None = None
    expected_patch_hash: str | None = None
    original_url: str | None = None
    note: str | None = None

    @property
    def is_patchable(self) -> bool:
        return bool(self.patch_url and self.expected_patch_hash)


@dataclass(frozen=True)
class PatchWorkspace:
    """On-disk layout of the patch workspace beside one live binary."""

    root: Path
    original_slot: Path
    patched_slot: Path
    state_path: Path
    temp_download_path: Path

    @property
    def slot_dirs(self) -> tuple[Path, Path]:
        return self.original_slot.parent, self.patched_slot.parent


@dataclass(frozen=True)
class PatchState:
    """Last-known patch status persisted beside a binary.

    ``enabled`` is a claim, not a fact: every reader must be prepared for the
    live binary's digest to disagree with it.
    """

    enabled: bool
    patch_hash: str | None = None
    patch_url: str | None = None
    original_url: str | None = None
    note: str | None = None
    updated_at: int = 0
    schema_version: int = STATE_SCHEMA_VERSION

    def with_enabled(self, enabled: bool, *, updated_at: int) -> "PatchState":
        return replace(self, enabled=enabled, updated_at=updated_at)


class PatchCondition(str, Enum):
    """Patch condition inferred from the state claim and the live digest."""

    DISABLED = "disabled"
    ENABLED = "enabled"
    DRIFTED = "drifted"
    OUTDATED = "outdated"


class EnableOutcome(str, Enum):
    ENABLED = "enabled"
    ALREADY_ENABLED = "already-enabled"
    SKIPPED = "skipped"


class DisableOutcome(str, Enum):
    DISABLED = "disabled"
    ALREADY_DISABLED = "already-disabled"
    SKIPPED = "skipped"


class FixOutcome(str, Enum):
    FIXED = "fixed"
    NOT_NEEDED = "not-needed"
    SKIPPED = "skipped"


class CheckOutcome(str, Enum):
    NEEDS = "needs"
    UP_TO_DATE = "up-to-date"
    SKIPPED = "skipped"


class ProgressPhase(str, Enum):
    ENABLING = "enabling"
    DISABLING = "disabling"


@dataclass
class AggregateProgress:
    """Byte counter shared by every download of one logical operation."""

    total_bytes: int | None = None
    current_bytes: int = 0


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification delivered to the UI layer.

    ``percent`` is ``-1`` whenever the total is unknown.
    """

    phase: ProgressPhase
    percent: int
    current_bytes: int = 0
    total_bytes: int | None = None

    @property
    def indeterminate(self) -> bool:
        return self.percent < 0


@dataclass(frozen=True)
class PatchHealth:
    enabled: bool = False
    client_is_patched: bool = False
    needs_fix_client: bool = False
    patch_outdated: bool = False


@dataclass(frozen=True)
class PatchStatus:
    """Cheap patch summary that avoids hashing the live binary."""

    available: bool = False
    enabled: bool = False
    downloaded: bool = False


@dataclass(frozen=True)
class DualDescriptors:
    client: PatchDescriptor
    server: PatchDescriptor | None = None


@dataclass(frozen=True)
class DualOutcome:
    client: EnableOutcome | DisableOutcome | FixOutcome
    server: EnableOutcome | DisableOutcome | FixOutcome | None = None


@dataclass(frozen=True)
class DualPatchHealth:
    client: PatchHealth = field(default_factory=PatchHealth)
    server: PatchHealth | None = None

    @property
    def needs_fix(self) -> bool:
        return self.client.needs_fix_client or bool(
            self.server is not None and self.server.needs_fix_client
        )

    @property
    def patch_outdated(self) -> bool:
        return self.client.patch_outdated or bool(
            self.server is not None and self.server.patch_outdated
        )


class PatchError(RuntimeError):
    """Base class for every failure raised by the patch engine."""


class DigestError(PatchError):
    """Raised when a file cannot be read while computing its digest."""


class NetworkError(PatchError):
    """Raised when a remote resource cannot be downloaded."""


class DownloadTimeoutError(NetworkError, TimeoutError):
    """Raised when a network call stalls past its timeout."""


class UnexpectedContentError(NetworkError):
    """Raised when an HTML page is served in place of a binary."""


class DownloadCancelledError(NetworkError):
    """Raised when a download is cancelled mid-transfer."""


class PatchIntegrityError(PatchError):
    """Raised when binary content does not match the digest it must have."""


class BackupUnavailableError(PatchError):
    """Raised when a needed variant exists neither locally nor remotely."""


class OperationInProgressError(PatchError):
    """Raised when a second operation targets a binary already in flight."""


__all__ = [
    "STATE_SCHEMA_VERSION",
    "AggregateProgress",
    "BackupUnavailableError",
    "BinaryTarget",
    "CheckOutcome",
    "DigestError",
    "DisableOutcome",
    "DownloadCancelledError",
    "DownloadTimeoutError",
    "DualDescriptors",
    "DualOutcome",
    "DualPatchHealth",
    "EnableOutcome",
    "FixOutcome",
    "NetworkError",
    "OperationInProgressError",
    "PatchCondition",
    "PatchDescriptor",
    "PatchError",
    "PatchHealth",
    "PatchIntegrityError",
    "PatchState",
    "PatchStatus",
    "PatchWorkspace",
    "ProgressEvent",
    "ProgressPhase",
    "TargetKind",
    "UnexpectedContentError",
]
