"""Helpers for constructing patch coordinators from configuration.

These builders are the engine's composition root.  A host application passes
``configure_logging=True`` once at start-up so engine diagnostics land in the
log file described by :mod:`shared.logging_config`.
"""

from __future__ import annotations

import logging

from app.config import PatchEngineConfig, get_engine_config
from services.online_patch.coordinator import PatchCoordinator
from services.online_patch.dual import DualTargetCoordinator
from services.online_patch.fetcher import ResourceFetcher, UrllibResourceFetcher
from services.online_patch.guard import OperationGuard
from shared.logging_config import ensure_engine_logging

_LOGGER = logging.getLogger(__name__)


def build_fetcher(config: PatchEngineConfig | None = None) -> UrllibResourceFetcher:
    config = config or get_engine_config()
    return UrllibResourceFetcher(
        timeout=config.fetch_timeout_seconds,
        head_timeout=config.head_timeout_seconds,
        chunk_size=config.chunk_size,
    )


def build_patch_coordinator(
    config: PatchEngineConfig | None = None,
    fetcher: ResourceFetcher | None = None,
    guard: OperationGuard | None = None,
    *,
    configure_logging: bool = False,
) -> PatchCoordinator:
    """Construct a :class:`PatchCoordinator` for the current environment."""

    config = config or get_engine_config()
    if configure_logging:
        ensure_engine_logging(config.log_verbosity)
    fetcher = fetcher or build_fetcher(config)
    _LOGGER.debug(
        "Building patch coordinator (workspace=%s, timeout=%ss)",
        config.workspace_dirname,
        config.fetch_timeout_seconds,
    )
    return PatchCoordinator(fetcher, config=config, guard=guard)


def build_dual_coordinator(
    config: PatchEngineConfig | None = None,
    fetcher: ResourceFetcher | None = None,
    guard: OperationGuard | None = None,
    *,
    configure_logging: bool = False,
) -> DualTargetCoordinator:
    config = config or get_engine_config()
    fetcher = fetcher or build_fetcher(config)
    coordinator = build_patch_coordinator(
        config, fetcher, guard, configure_logging=configure_logging
    )
    return DualTargetCoordinator(
        coordinator,
        fetcher,
        head_timeout=config.head_timeout_seconds,
        cache_buster_param=config.cache_buster_param,
    )


__all__ = ["build_dual_coordinator", "build_fetcher", "build_patch_coordinator"]
