from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator

from mount_probe.errors import MalformedEntry
from mount_probe.models.mount import MountEntry

logger = logging.getLogger(__name__)

READONLY = "ro"
READWRITE = "rw"

ALLOWED_FS_TYPES: frozenset[str] = frozenset(
    {
        "rootfs",
        "tmpfs",
        "vfat",
        "ext2",
        "ext3",
        "ext4",
    }
)

# "/dev/sda1 on /mnt/usb type vfat (rw,relatime)"
_MOUNT_CMD_RE = re.compile(
    r"^(?P<device>.+?) on (?P<mount_point>.+?) type (?P<fs_type>\S+)(?: \((?P<options>[^)]*)\))?$"
)
_OCTAL_RE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    return _OCTAL_RE.sub(lambda m: chr(int(m.group(1), 8)), field)


def _split_options(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(o for o in raw.split(",") if o)


def parse_mount_line(line: str) -> MountEntry:
    """Parse one mount table line.

    Both the kernel table layout (``device mount_point fs_type options dump pass``)
    and the ``mount`` command layout (``device on mount_point type fs_type (options)``)
    are understood. Raises ``MalformedEntry`` when the line can't be used.
    """
    text = line.strip()
    if not text or text.startswith("#"):
        raise MalformedEntry(line, "blank or comment line")

    m = _MOUNT_CMD_RE.match(text)
    if m:
        device = m.group("device")
        mount_point = m.group("mount_point")
        fs_type = m.group("fs_type")
        options = _split_options(m.group("options"))
        dump = pass_no = 0
    else:
        parts = text.split()
        if len(parts) < 3:
            raise MalformedEntry(line, "too few fields")
        device = _unescape(parts[0])
        mount_point = _unescape(parts[1])
        fs_type = parts[2]
        options = _split_options(parts[3] if len(parts) > 3 else None)
        try:
            dump = int(parts[4]) if len(parts) > 4 else 0
            pass_no = int(parts[5]) if len(parts) > 5 else 0
        except ValueError:
            raise MalformedEntry(line, "non-numeric dump/pass field") from None

    if not mount_point.startswith("/"):
        raise MalformedEntry(line, "mount point is not absolute")

    return MountEntry(
        mount_point=mount_point,
        device=device,
        fs_type=fs_type,
        options=options,
        dump=dump,
        pass_no=pass_no,
    )


def _sort_key(entry: MountEntry) -> tuple[int, str]:
    return (-len(entry.mount_point), entry.mount_point)


class MountTable:
    """Snapshot of the mounted filesystems, most specific mount point first."""

    def __init__(self, entries: Iterable[MountEntry]) -> None:
        # Later entries shadow earlier ones on the same mount point.
        by_mount: dict[str, MountEntry] = {}
        for e in entries:
            by_mount[e.mount_point] = e
        self._entries: tuple[MountEntry, ...] = tuple(sorted(by_mount.values(), key=_sort_key))

    @classmethod
    def build(cls, raw_lines: Iterable[str]) -> MountTable:
        entries: list[MountEntry] = []
        for line in raw_lines:
            try:
                entries.append(parse_mount_line(line))
            except MalformedEntry as e:
                logger.debug("Skipping mount line: %s", e)
        return cls(entries)

    @classmethod
    def from_entries(cls, entries: Iterable[MountEntry]) -> MountTable:
        return cls(entries)

    @property
    def entries(self) -> tuple[MountEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MountEntry]:
        return iter(self._entries)

    def resolve(self, path: str, component_aware: bool = False) -> MountEntry | None:
        for e in self._entries:
            if _matches(e.mount_point, path, component_aware):
                return e
        return None


def _matches(mount_point: str, path: str, component_aware: bool) -> bool:
    if not component_aware:
        return path.startswith(mount_point)
    if mount_point == "/" or path == mount_point:
        return True
    return path.startswith(mount_point.rstrip("/") + "/")


def is_read_only(entry: MountEntry | None) -> bool:
    try:
        return entry.options[0].startswith(READONLY)  # type: ignore[union-attr]
    except (AttributeError, IndexError, TypeError) as e:
        logger.debug("Can't read mount options of %r, assuming read-only: %s", entry, e)
    return True


def is_read_write(entry: MountEntry | None) -> bool:
    try:
        return entry.options[0].startswith(READWRITE)  # type: ignore[union-attr]
    except (AttributeError, IndexError, TypeError) as e:
        logger.debug("Can't read mount options of %r, assuming not read-write: %s", entry, e)
    return False


def is_mount_allowed(entry: MountEntry, allowed: Iterable[str] = ALLOWED_FS_TYPES) -> bool:
    return entry.fs_type in allowed
