from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence
from typing import Callable

import psutil

from mount_probe.errors import ProviderUnavailable
from mount_probe.models.mount import DiskUsage

logger = logging.getLogger(__name__)

MountsProvider = Callable[[], list[str]]
UsageProvider = Callable[[str], DiskUsage]

MOUNTS_PROVIDERS: frozenset[str] = frozenset({"psutil", "proc", "command"})
USAGE_PROVIDERS: frozenset[str] = frozenset({"psutil", "statvfs", "df"})

_ESCAPES = {"\\": "\\134", " ": "\\040", "\t": "\\011", "\n": "\\012"}


def _escape(field: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in field)


def _run(name: str, argv: Sequence[str], timeout_s: float) -> str:
    logger.debug("Running %s", " ".join(argv))
    try:
        proc = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired:
        raise ProviderUnavailable(name, f"{argv[0]} timed out after {timeout_s}s") from None
    except OSError as e:
        raise ProviderUnavailable(name, f"{argv[0]} failed to start: {e}") from e

    if proc.returncode != 0:
        err = (proc.stderr or "").strip() or f"exit code {proc.returncode}"
        raise ProviderUnavailable(name, f"{argv[0]}: {err}")
    return proc.stdout


class PsutilMountsProvider:
    name = "psutil"

    def __init__(self, all_mounts: bool = True) -> None:
        self.all_mounts = all_mounts

    def __call__(self) -> list[str]:
        try:
            parts = psutil.disk_partitions(all=self.all_mounts)
        except OSError as e:
            raise ProviderUnavailable(self.name, str(e)) from e

        lines: list[str] = []
        for p in parts:
            fields = [_escape(str(p.device) or "none"), _escape(str(p.mountpoint)), str(p.fstype) or "none"]
            if p.opts:
                fields.append(str(p.opts))
            lines.append(" ".join(fields))
        return lines


class ProcMountsProvider:
    name = "proc"

    def __init__(self, path: str = "/proc/mounts") -> None:
        self.path = path

    def __call__(self) -> list[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read().splitlines()
        except OSError as e:
            raise ProviderUnavailable(self.name, f"{self.path}: {e}") from e


class CommandMountsProvider:
    name = "command"

    def __init__(self, argv: Sequence[str] = ("mount",), timeout_s: float = 5.0) -> None:
        self.argv = tuple(argv)
        self.timeout_s = float(timeout_s)

    def __call__(self) -> list[str]:
        return _run(self.name, self.argv, self.timeout_s).splitlines()


class PsutilUsageProvider:
    name = "psutil"

    def __call__(self, mount_point: str) -> DiskUsage:
        try:
            u = psutil.disk_usage(mount_point)
        except OSError as e:
            raise ProviderUnavailable(self.name, f"{mount_point}: {e}") from e
        return DiskUsage(
            mount_point=mount_point,
            total_bytes=int(u.total),
            used_bytes=int(u.used),
            free_bytes=int(u.free),
        )


class StatvfsUsageProvider:
    name = "statvfs"

    def __call__(self, mount_point: str) -> DiskUsage:
        if not hasattr(os, "statvfs"):
            raise ProviderUnavailable(self.name, "statvfs is not available on this platform")
        try:
            st = os.statvfs(mount_point)
        except OSError as e:
            raise ProviderUnavailable(self.name, f"{mount_point}: {e}") from e
        return DiskUsage(
            mount_point=mount_point,
            total_bytes=int(st.f_blocks) * int(st.f_frsize),
            used_bytes=(int(st.f_blocks) - int(st.f_bfree)) * int(st.f_frsize),
            free_bytes=int(st.f_bavail) * int(st.f_frsize),
        )


class DfUsageProvider:
    name = "df"

    def __init__(self, argv: Sequence[str] = ("df", "-k", "-P"), timeout_s: float = 5.0) -> None:
        self.argv = tuple(argv)
        self.timeout_s = float(timeout_s)

    def __call__(self, mount_point: str) -> DiskUsage:
        out = _run(self.name, (*self.argv, mount_point), self.timeout_s)
        return parse_df_output(mount_point, out)


def parse_df_output(mount_point: str, output: str) -> DiskUsage:
    """Parse POSIX ``df -k -P`` output (header plus one row of 1024-byte blocks)."""
    lines = [ln for ln in output.strip().splitlines() if ln.strip()]
    if len(lines) < 2:
        raise ProviderUnavailable(DfUsageProvider.name, f"no data row for {mount_point}")

    parts = lines[1].split()
    if len(parts) < 6:
        raise ProviderUnavailable(DfUsageProvider.name, f"unexpected row: {lines[1]!r}")
    try:
        total, used, free = (int(x) * 1024 for x in parts[1:4])
    except ValueError:
        raise ProviderUnavailable(DfUsageProvider.name, f"unexpected row: {lines[1]!r}") from None
    return DiskUsage(mount_point=mount_point, total_bytes=total, used_bytes=used, free_bytes=free)


def build_mounts_provider(name: str, timeout_s: float = 5.0) -> MountsProvider:
    if name == "psutil":
        return PsutilMountsProvider()
    if name == "proc":
        return ProcMountsProvider()
    if name == "command":
        return CommandMountsProvider(timeout_s=timeout_s)
    raise ValueError(f"unknown mounts provider: {name!r}")


def build_usage_provider(name: str, timeout_s: float = 5.0) -> UsageProvider:
    if name == "psutil":
        return PsutilUsageProvider()
    if name == "statvfs":
        return StatvfsUsageProvider()
    if name == "df":
        return DfUsageProvider(timeout_s=timeout_s)
    raise ValueError(f"unknown usage provider: {name!r}")
