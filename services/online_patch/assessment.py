"""Classify a binary's patch condition from its state claim and live digest."""

from __future__ import annotations

from dataclasses import dataclass

from services.online_patch.hashing import hashes_match
from services.online_patch.models import PatchCondition, PatchState


@dataclass(frozen=True)
class PatchAssessment:
    """Facts gathered once at the start of an operation.

    ``live_hash`` is ``None`` only when the caller chose to tolerate a digest
    failure (health checks); mutating operations propagate it instead.
    """

    condition: PatchCondition
    state: PatchState | None
    live_hash: str | None
    expected_hash: str | None

    @property
    def recorded_hash(self) -> str | None:
        return self.state.patch_hash if self.state is not None else None

    @property
    def claims_enabled(self) -> bool:
        return self.state is not None and self.state.enabled

    @property
    def live_matches_expected(self) -> bool:
        return hashes_match(self.live_hash, self.expected_hash)

    @property
    def live_is_patched(self) -> bool:
        """Whether the live binary is any known patched variant."""

        return self.live_matches_expected or hashes_match(self.live_hash, self.recorded_hash)

    @property
    def patch_hashes(self) -> tuple[str, ...]:
        """Every digest an original backup must never have."""

        return tuple(value for value in (self.expected_hash, self.recorded_hash) if value)


def assess(
    state: PatchState | None,
    live_hash: str | None,
    expected_hash: str | None,
) -> PatchAssessment:
    return PatchAssessment(
        condition=classify_condition(state, live_hash, expected_hash),
        state=state,
        live_hash=live_hash,
        expected_hash=expected_hash,
    )


def classify_condition(
    state: PatchState | None,
    live_hash: str | None,
    expected_hash: str | None,
) -> PatchCondition:
    """Return the condition of one binary.

    * ``OUTDATED``: the state claims enabled, but the recorded patch hash is
      not the one currently published.
    * ``DRIFTED``: the state explicitly says disabled, yet the live binary is
      patched content.
    * ``ENABLED``: the live binary is the published patch, or the state
      claims so and nothing contradicts the recorded hash.
    * ``DISABLED``: everything else, including a missing state with an
      unpatched binary.
    """

    recorded = state.patch_hash if state is not None else None
    live_patched = hashes_match(live_hash, expected_hash) or hashes_match(live_hash, recorded)

    if state is not None and state.enabled:
        if recorded and expected_hash and not hashes_match(recorded, expected_hash):
            return PatchCondition.OUTDATED
        return PatchCondition.ENABLED
    if state is not None and live_patched:
        return PatchCondition.DRIFTED
    if live_patched:
        return PatchCondition.ENABLED
    return PatchCondition.DISABLED


__all__ = ["PatchAssessment", "assess", "classify_condition"]
