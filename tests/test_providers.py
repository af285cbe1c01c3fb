"""Tests for the mount enumeration and usage query providers.

psutil, subprocess and os.statvfs are patched, so nothing here depends on the
host's real mounts.
"""

import os
import subprocess
import tempfile
import unittest
import unittest.mock as mock

from mount_probe.collectors.mount_table import MountTable
from mount_probe.collectors.providers import (
    CommandMountsProvider,
    DfUsageProvider,
    ProcMountsProvider,
    PsutilMountsProvider,
    PsutilUsageProvider,
    StatvfsUsageProvider,
    build_mounts_provider,
    build_usage_provider,
    parse_df_output,
)
from mount_probe.errors import ProviderUnavailable


PATCH_RUN = "mount_probe.collectors.providers.subprocess.run"

DF_OUTPUT = """Filesystem     1024-blocks     Used Available Capacity Mounted on
/dev/sda2        102400000 61440000  40960000      61% /
"""


def _part(device, mountpoint, fstype, opts):
    return mock.Mock(device=device, mountpoint=mountpoint, fstype=fstype, opts=opts)


def _completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args=["x"], returncode=returncode, stdout=stdout, stderr=stderr)


class TestPsutilMountsProvider(unittest.TestCase):

    def test_lines_parse_back(self):
        parts = [
            _part("/dev/sda2", "/", "ext4", "rw,relatime"),
            _part("/dev/sdb1", "/media/My Disk", "vfat", "ro,nosuid"),
            _part("", "/proc", "", ""),
        ]
        with mock.patch("psutil.disk_partitions", return_value=parts) as dp:
            lines = PsutilMountsProvider()()
        dp.assert_called_once_with(all=True)

        table = MountTable.build(lines)
        self.assertEqual(len(table), 3)
        media = table.resolve("/media/My Disk/photo.jpg")
        self.assertEqual(media.mount_point, "/media/My Disk")
        self.assertEqual(media.options, ("ro", "nosuid"))
        proc = table.resolve("/proc/1")
        self.assertEqual(proc.device, "none")
        self.assertEqual(proc.options, ())

    def test_empty(self):
        with mock.patch("psutil.disk_partitions", return_value=[]):
            self.assertEqual(PsutilMountsProvider()(), [])

    def test_failure(self):
        with mock.patch("psutil.disk_partitions", side_effect=PermissionError("denied")):
            with self.assertRaises(ProviderUnavailable):
                PsutilMountsProvider()()


class TestProcMountsProvider(unittest.TestCase):

    def test_reads_file(self):
        with tempfile.TemporaryDirectory() as d:
            p = os.path.join(d, "mounts")
            with open(p, "w", encoding="utf-8") as f:
                f.write("rootfs / rootfs rw 0 0\ntmpfs /dev tmpfs rw 0 0\n")
            lines = ProcMountsProvider(path=p)()
        self.assertEqual(lines, ["rootfs / rootfs rw 0 0", "tmpfs /dev tmpfs rw 0 0"])

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as d:
            with self.assertRaises(ProviderUnavailable) as cm:
                ProcMountsProvider(path=os.path.join(d, "nope"))()
        self.assertEqual(cm.exception.provider, "proc")


class TestCommandMountsProvider(unittest.TestCase):

    def test_output_lines(self):
        out = "/dev/sda2 on / type ext4 (rw,relatime)\nproc on /proc type proc (rw)\n"
        with mock.patch(PATCH_RUN, return_value=_completed(stdout=out)) as run:
            lines = CommandMountsProvider(timeout_s=3)()
        self.assertEqual(len(lines), 2)
        self.assertEqual(run.call_args.args[0], ["mount"])
        self.assertEqual(run.call_args.kwargs["timeout"], 3.0)
        self.assertEqual(MountTable.build(lines).resolve("/proc/self").fs_type, "proc")

    def test_nonzero_exit(self):
        with mock.patch(PATCH_RUN, return_value=_completed(stderr="permission denied", returncode=1)):
            with self.assertRaises(ProviderUnavailable) as cm:
                CommandMountsProvider()()
        self.assertIn("permission denied", str(cm.exception))

    def test_timeout(self):
        with mock.patch(PATCH_RUN, side_effect=subprocess.TimeoutExpired(cmd="mount", timeout=5)):
            with self.assertRaises(ProviderUnavailable):
                CommandMountsProvider()()

    def test_missing_binary(self):
        with mock.patch(PATCH_RUN, side_effect=FileNotFoundError("mount")):
            with self.assertRaises(ProviderUnavailable):
                CommandMountsProvider()()


class TestUsageProviders(unittest.TestCase):

    def test_psutil_usage(self):
        with mock.patch("psutil.disk_usage", return_value=mock.Mock(total=1000, used=400, free=600)):
            u = PsutilUsageProvider()("/data")
        self.assertEqual((u.mount_point, u.total_bytes, u.used_bytes, u.free_bytes), ("/data", 1000, 400, 600))

    def test_psutil_usage_failure(self):
        with mock.patch("psutil.disk_usage", side_effect=FileNotFoundError("/gone")):
            with self.assertRaises(ProviderUnavailable):
                PsutilUsageProvider()("/gone")

    def test_statvfs_usage(self):
        st = mock.Mock(f_blocks=100, f_bfree=40, f_bavail=30, f_frsize=4096)
        with mock.patch("os.statvfs", return_value=st, create=True):
            u = StatvfsUsageProvider()("/")
        self.assertEqual(u.total_bytes, 100 * 4096)
        self.assertEqual(u.used_bytes, 60 * 4096)
        self.assertEqual(u.free_bytes, 30 * 4096)

    def test_statvfs_failure(self):
        with mock.patch("os.statvfs", side_effect=OSError("io"), create=True):
            with self.assertRaises(ProviderUnavailable):
                StatvfsUsageProvider()("/")

    def test_df_usage(self):
        with mock.patch(PATCH_RUN, return_value=_completed(stdout=DF_OUTPUT)) as run:
            u = DfUsageProvider()("/")
        self.assertEqual(run.call_args.args[0], ["df", "-k", "-P", "/"])
        self.assertEqual(u.total_bytes, 102400000 * 1024)
        self.assertEqual(u.used_bytes, 61440000 * 1024)
        self.assertEqual(u.free_bytes, 40960000 * 1024)

    def test_df_output_without_rows(self):
        with self.assertRaises(ProviderUnavailable):
            parse_df_output("/", "Filesystem 1024-blocks Used Available Capacity Mounted on\n")

    def test_df_output_garbage(self):
        with self.assertRaises(ProviderUnavailable):
            parse_df_output("/", "header\n/dev/sda2 - - - - /\n")


class TestBuildProviders(unittest.TestCase):

    def test_known_names(self):
        self.assertIsInstance(build_mounts_provider("psutil"), PsutilMountsProvider)
        self.assertIsInstance(build_mounts_provider("proc"), ProcMountsProvider)
        self.assertEqual(build_mounts_provider("command", timeout_s=2).timeout_s, 2.0)
        self.assertIsInstance(build_usage_provider("psutil"), PsutilUsageProvider)
        self.assertIsInstance(build_usage_provider("statvfs"), StatvfsUsageProvider)
        self.assertIsInstance(build_usage_provider("df"), DfUsageProvider)

    def test_unknown_names(self):
        with self.assertRaises(ValueError):
            build_mounts_provider("fstab")
        with self.assertRaises(ValueError):
            build_usage_provider("du")


if __name__ == "__main__":
    unittest.main()
