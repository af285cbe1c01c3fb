from __future__ import annotations

from dataclasses import dataclass

from mount_probe.models.common import LookupResult


@dataclass(frozen=True)
class MountEntry:
    mount_point: str
    device: str
    fs_type: str
    options: tuple[str, ...] = ()
    dump: int = 0
    pass_no: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.mount_point, str) or not self.mount_point.startswith("/"):
            raise ValueError(f"mount point must be an absolute path: {self.mount_point!r}")


@dataclass(frozen=True)
class DiskUsage:
    mount_point: str
    total_bytes: int
    used_bytes: int
    free_bytes: int

    @classmethod
    def unknown(cls, mount_point: str) -> DiskUsage:
        return cls(mount_point=mount_point, total_bytes=0, used_bytes=0, free_bytes=0)

    @property
    def is_unknown(self) -> bool:
        return self.total_bytes == 0


@dataclass(frozen=True)
class UsageClassification:
    percent_used: int
    is_warning: bool
    color: str


@dataclass(frozen=True)
class FilesystemStatus:
    path: str
    lookup: LookupResult[MountEntry]
    usage: DiskUsage | None
    classification: UsageClassification
    read_only: bool
    mount_allowed: bool

    @property
    def entry(self) -> MountEntry | None:
        return self.lookup.value
