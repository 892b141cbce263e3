"""Run patch operations for a client binary and an optional server binary."""

from __future__ import annotations

import logging

from services.online_patch.constants import HEAD_CACHE_KEY_PREFIX
from services.online_patch.coordinator import PatchCoordinator
from services.online_patch.fetcher import CancelToken, ResourceFetcher, with_cache_buster
from services.online_patch.models import (
    AggregateProgress,
    BinaryTarget,
    CheckOutcome,
    DualDescriptors,
    DualOutcome,
    DualPatchHealth,
    FixOutcome,
    PatchDescriptor,
)
from services.online_patch.progress import ProgressListener

_LOGGER = logging.getLogger(__name__)


class DualTargetCoordinator:
    """Drive the client and server binaries as one logical operation.

    Both enables share a single :class:`AggregateProgress`, so a 200 MB client
    patch and a 50 MB server patch report progress out of 250 MB.
    """

    def __init__(
        self,
        coordinator: PatchCoordinator,
        fetcher: ResourceFetcher,
        *,
        head_timeout: float | None = None,
        cache_buster_param: str = "cb",
    ) -> None:
        self._coordinator = coordinator
        self._fetcher = fetcher
        self._head_timeout = head_timeout
        self._cache_buster_param = cache_buster_param

    @property
    def coordinator(self) -> PatchCoordinator:
        return self._coordinator

    def enable_both(
        self,
        client: BinaryTarget,
        server: BinaryTarget | None,
        descriptors: DualDescriptors,
        *,
        listener: ProgressListener | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DualOutcome:
        pairs = self._pairs(client, server, descriptors)
        aggregate = self.preflight(pairs)

        client_result = self._coordinator.enable(
            client,
            descriptors.client,
            listener=listener,
            aggregate=aggregate,
            cancel_token=cancel_token,
        )
        server_result = None
        if len(pairs) > 1:
            server_target, server_descriptor = pairs[1]
            server_result = self._coordinator.enable(
                server_target,
                server_descriptor,
                listener=listener,
                aggregate=aggregate,
                cancel_token=cancel_token,
            )
        return DualOutcome(client=client_result, server=server_result)

    def disable_both(
        self,
        client: BinaryTarget,
        server: BinaryTarget | None,
        descriptors: DualDescriptors,
        *,
        listener: ProgressListener | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DualOutcome:
        results = [
            self._coordinator.disable(
                target, descriptor, listener=listener, cancel_token=cancel_token
            )
            for target, descriptor in self._pairs(client, server, descriptors)
        ]
        return DualOutcome(client=results[0], server=results[1] if len(results) > 1 else None)

    def fix_both(
        self,
        client: BinaryTarget,
        server: BinaryTarget | None,
        descriptors: DualDescriptors,
        *,
        listener: ProgressListener | None = None,
        cancel_token: CancelToken | None = None,
    ) -> FixOutcome:
        results = [
            self._coordinator.fix(target, descriptor, listener=listener, cancel_token=cancel_token)
            for target, descriptor in self._pairs(client, server, descriptors)
        ]
        if FixOutcome.FIXED in results:
            return FixOutcome.FIXED
        if all(result is FixOutcome.SKIPPED for result in results):
            return FixOutcome.SKIPPED
        return FixOutcome.NOT_NEEDED

    def health_both(
        self,
        client: BinaryTarget,
        server: BinaryTarget | None,
        descriptors: DualDescriptors,
    ) -> DualPatchHealth:
        pairs = self._pairs(client, server, descriptors)
        client_health = self._coordinator.health(*pairs[0])
        server_health = self._coordinator.health(*pairs[1]) if len(pairs) > 1 else None
        return DualPatchHealth(client=client_health, server=server_health)

    def check_both(
        self,
        client: BinaryTarget,
        server: BinaryTarget | None,
        descriptors: DualDescriptors,
    ) -> CheckOutcome:
        pairs = self._pairs(client, server, descriptors)
        client_check = self._coordinator.check(*pairs[0])
        if client_check is not CheckOutcome.UP_TO_DATE:
            return client_check
        for target, descriptor in pairs[1:]:
            if self._coordinator.check(target, descriptor) is CheckOutcome.NEEDS:
                return CheckOutcome.NEEDS
        return CheckOutcome.UP_TO_DATE

    def preflight(
        self, pairs: list[tuple[BinaryTarget, PatchDescriptor]]
    ) -> AggregateProgress | None:
        """Size the downloads that enabling ``pairs`` will actually perform.

        HEAD requests are only issued for targets whose patched cache is not
        already valid.  Returns ``None`` when nothing will be downloaded.  The
        total stays ``None`` when any size is unknown.
        """

        pending = [
            (target, descriptor)
            for target, descriptor in pairs
            if self._coordinator.needs_download(target, descriptor)
        ]
        if not pending:
            _LOGGER.debug("Preflight: no downloads needed")
            return None

        total = 0
        all_known = True
        for target, descriptor in pending:
            patch_url = descriptor.patch_url
            if patch_url is None:
                continue
            size = self._fetcher.content_length(
                with_cache_buster(
                    patch_url,
                    f"{HEAD_CACHE_KEY_PREFIX}-{target.kind.value}",
                    param=self._cache_buster_param,
                ),
                timeout=self._head_timeout,
            )
            _LOGGER.debug("Preflight: %s download size %s", target.label, size)
            if size is None or size <= 0:
                all_known = False
                continue
            total += size

        aggregate = AggregateProgress(total_bytes=total if all_known and total > 0 else None)
        _LOGGER.info(
            "Preflight: %d download(s) pending, total %s bytes",
            len(pending),
            aggregate.total_bytes if aggregate.total_bytes is not None else "unknown",
        )
        return aggregate

    @staticmethod
    def _pairs(
        client: BinaryTarget,
        server: BinaryTarget | None,
        descriptors: DualDescriptors,
    ) -> list[tuple[BinaryTarget, PatchDescriptor]]:
        pairs = [(client, descriptors.client)]
        if server is not None and descriptors.server is not None:
            pairs.append((server, descriptors.server))
        return pairs


__all__ = ["DualTargetCoordinator"]
