from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from mount_probe.collectors.mount_table import MountTable, is_mount_allowed, is_read_only
from mount_probe.collectors.providers import (
    MountsProvider,
    UsageProvider,
    build_mounts_provider,
    build_usage_provider,
)
from mount_probe.models.common import LookupResult
from mount_probe.models.mount import DiskUsage, FilesystemStatus, MountEntry, UsageClassification
from mount_probe.services.config_service import ProbeSettings, get_settings

logger = logging.getLogger(__name__)


class DiskUsageResolver:
    """Finds the filesystem that owns a path and measures how full it is.

    Provider failures never escape: a failed mount lookup comes back as a
    ``PROVIDER_ERROR`` result and a failed usage query as a zeroed ``DiskUsage``.
    """

    def __init__(
        self,
        settings: ProbeSettings | None = None,
        mounts_provider: MountsProvider | None = None,
        usage_provider: UsageProvider | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.mounts_provider = mounts_provider or build_mounts_provider(
            self.settings.mounts_provider, timeout_s=self.settings.command_timeout_s
        )
        self.usage_provider = usage_provider or build_usage_provider(
            self.settings.usage_provider, timeout_s=self.settings.command_timeout_s
        )
        self._executor = executor
        self._owns_executor = executor is None
        self._executor_lock = threading.Lock()

    def resolve_mount_point(self, path: str) -> LookupResult[MountEntry]:
        try:
            table = MountTable.build(self.mounts_provider())
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to retrieve the mount point information for %s", path, exc_info=True)
            return LookupResult.provider_error(str(e))

        entry = table.resolve(path, component_aware=self.settings.component_aware_match)
        if entry is None:
            logger.warning("No mount point owns %s (%d mounts checked)", path, len(table))
            return LookupResult.not_found()
        return LookupResult.found(entry)

    def get_usage(self, entry: MountEntry) -> DiskUsage:
        try:
            return self.usage_provider(entry.mount_point)
        except Exception:  # noqa: BLE001
            logger.error("Fail to load disk usage of mount point: %s", entry.mount_point, exc_info=True)
            return DiskUsage.unknown(entry.mount_point)

    def classify(self, usage: DiskUsage | None) -> UsageClassification:
        if usage is None:
            percent = 0
        elif usage.total_bytes == 0:
            percent = 100
        else:
            percent = min(100, max(0, usage.used_bytes * 100 // usage.total_bytes))

        warning = percent >= self.settings.warning_threshold
        return UsageClassification(
            percent_used=percent,
            is_warning=warning,
            color=self.settings.color_warning if warning else self.settings.color_normal,
        )

    def resolve(self, path: str) -> FilesystemStatus:
        return self.resolve_usage(path, self.resolve_mount_point(path))

    def resolve_usage(self, path: str, lookup: LookupResult[MountEntry]) -> FilesystemStatus:
        """Query usage for an already resolved lookup; skipped when nothing was found."""
        usage = self.get_usage(lookup.value) if lookup.ok else None  # type: ignore[arg-type]
        return self._status(path, lookup, usage)

    def _status(self, path: str, lookup: LookupResult[MountEntry], usage: DiskUsage | None) -> FilesystemStatus:
        entry = lookup.value
        return FilesystemStatus(
            path=path,
            lookup=lookup,
            usage=usage,
            classification=self.classify(usage),
            read_only=is_read_only(entry),
            mount_allowed=entry is not None and is_mount_allowed(entry, self.settings.allowed_fs_types),
        )

    def submit(self, path: str, cancel_event: threading.Event | None = None) -> Future[FilesystemStatus | None]:
        """Run a resolution on the worker pool.

        When ``cancel_event`` is set before a step starts, the step is skipped
        and the future resolves to ``None``. No timeout is applied here; pass
        one to ``Future.result``.
        """
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.max_workers, thread_name_prefix="mount_probe"
                )
            executor = self._executor
        return executor.submit(self._resolve_cancellable, path, cancel_event)

    def _resolve_cancellable(self, path: str, cancel_event: threading.Event | None) -> FilesystemStatus | None:
        def cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        if cancelled():
            return None
        lookup = self.resolve_mount_point(path)
        if cancelled():
            return None
        status = self.resolve_usage(path, lookup)
        if cancelled():
            return None
        return status

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_lock:
            executor, owned = self._executor, self._owns_executor
            if owned:
                self._executor = None
        if owned and executor is not None:
            executor.shutdown(wait=wait)
