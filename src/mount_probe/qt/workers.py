from __future__ import annotations

from PySide6.QtCore import QObject, QRunnable, Signal, Slot

from mount_probe.services.resolver import DiskUsageResolver


class WorkerSignals(QObject):
    mount_resolved = Signal(object)
    usage_resolved = Signal(object)
    error = Signal(str)
    finished = Signal()


class FilesystemWorker(QRunnable):
    """Resolves the mount point and disk usage of a path on a QThreadPool.

    ``mount_resolved`` carries the ``LookupResult``; ``usage_resolved`` carries the
    ``FilesystemStatus`` and only fires when a mount point was found. Nothing is
    emitted after ``cancel()`` except ``finished``.
    """

    def __init__(self, resolver: DiskUsageResolver, path: str) -> None:
        super().__init__()
        self.resolver = resolver
        self.path = path
        self.signals = WorkerSignals()
        self.setAutoDelete(False)
        self._cancelled = False
        self._running = False

    def cancel(self) -> None:
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled

    def is_running(self) -> bool:
        return self._running

    @Slot()
    def run(self) -> None:
        self._running = True
        try:
            if self._cancelled:
                return
            lookup = self.resolver.resolve_mount_point(self.path)
            if self._cancelled:
                return
            self.signals.mount_resolved.emit(lookup)
            if not lookup.ok:
                return

            if self._cancelled:
                return
            status = self.resolver.resolve_usage(self.path, lookup)
            if self._cancelled:
                return
            self.signals.usage_resolved.emit(status)
        except Exception as e:  # noqa: BLE001
            self.signals.error.emit(str(e))
        finally:
            self._running = False
            self.signals.finished.emit()
