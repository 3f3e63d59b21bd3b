"""Mounted devices and their disk usage."""

from __future__ import annotations

import io
import logging
import os
import subprocess
import sys
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import NoReturn, Protocol, TextIO

_log = logging.getLogger(__name__)

_LINUX_NETWORK_FSTYPES = ("zfs", "nfs", "nfs4")


class UnsupportedPlatformError(RuntimeError):
    """Raised when devices cannot be listed on the current platform."""

    def __init__(self, message: str, platform: str = "") -> None:
        super().__init__(message)
        self.platform = platform


@dataclass(eq=False)
class Device:
    """A mounted filesystem."""

    name: str = ""
    mount_point: str = ""
    fstype: str = ""
    size: int = 0
    free: int = 0

    @property
    def usage(self) -> int:
        """Used size of the device."""
        return self.size - self.free


class DevicesInfoGetter(Protocol):
    def get_mounts(self) -> list[Device]: ...

    def get_devices_info(self) -> list[Device]: ...


def sort_by_used_size(devices: list[Device], reverse: bool = False) -> None:
    """Sort in place, most used first (least used first if reversed)."""
    devices.sort(key=lambda device: device.usage, reverse=not reverse)


def sort_by_name(devices: list[Device], reverse: bool = False) -> None:
    """Sort in place by device name, descending (ascending if reversed)."""
    devices.sort(key=lambda device: device.name, reverse=not reverse)


def get_nested_mountpoints_paths(path: str, mounts: Iterable[Device]) -> list[str]:
    """Return mount points lying below path, excluding path itself."""
    return [
        mount.mount_point
        for mount in mounts
        if mount.mount_point.startswith(path) and mount.mount_point != path
    ]


def read_mounts_file(stream: TextIO) -> list[Device]:
    """Parse a file in the format of /proc/mounts."""
    mounts = []
    for line in stream:
        parts = line.split()
        if len(parts) < 3:
            raise ValueError(f"Cannot parse mounts line: {line.rstrip()!r}")
        mounts.append(Device(name=parts[0], mount_point=parts[1], fstype=parts[2]))
    return mounts


def read_mount_output(stream: TextIO) -> list[Device]:
    """Parse the output of the BSD mount command."""
    mounts = []
    for line in stream:
        parts = line.split()
        if len(parts) < 4 or len(parts[3]) < 3:
            raise ValueError("Cannot parse mount output")
        mounts.append(
            Device(name=parts[0], mount_point=parts[2], fstype=parts[3][1:-1])
        )
    return mounts


def _fill_usage(mount: Device, ignore_errors: bool) -> None:
    try:
        if not hasattr(os, "statvfs"):
            raise OSError(f"cannot stat filesystem of {mount.mount_point}")
        info = os.statvfs(mount.mount_point)
    except OSError:
        if not ignore_errors:
            raise
        mount.size = 0
        mount.free = 0
        return
    mount.size = info.f_bsize * info.f_blocks
    mount.free = info.f_bsize * info.f_bavail


def process_linux_mounts(
    mounts: Iterable[Device], ignore_errors: bool = False
) -> list[Device]:
    """Keep real devices and network filesystems, filling in their usage."""
    devices = []
    for mount in mounts:
        if "/snap/" in mount.mount_point:
            continue
        if mount.name.startswith("/dev") or mount.fstype in _LINUX_NETWORK_FSTYPES:
            _fill_usage(mount, ignore_errors)
            devices.append(mount)
    return devices


def process_freebsd_mounts(
    mounts: Iterable[Device], ignore_errors: bool = False
) -> list[Device]:
    """Keep real devices and ZFS datasets, filling in their usage."""
    devices = []
    for mount in mounts:
        if mount.name.startswith("/dev") or mount.fstype == "zfs":
            _fill_usage(mount, ignore_errors)
            devices.append(mount)
    return devices


@dataclass
class LinuxDevicesInfoGetter:
    """Reads mounted filesystems from a mounts table file."""

    mounts_path: str = "/proc/mounts"

    def get_mounts(self) -> list[Device]:
        with open(self.mounts_path, encoding="utf-8", errors="surrogateescape") as file:
            return read_mounts_file(file)

    def get_devices_info(self) -> list[Device]:
        return process_linux_mounts(self.get_mounts(), False)


@dataclass
class FreeBSDDevicesInfoGetter:
    """Reads mounted filesystems from the output of the mount command."""

    mount_cmd: str = "/sbin/mount"

    def get_mounts(self) -> list[Device]:
        result = subprocess.run(
            [self.mount_cmd], capture_output=True, check=True
        )
        output = result.stdout.decode("utf-8", "surrogateescape")
        return read_mount_output(io.StringIO(output))

    def get_devices_info(self) -> list[Device]:
        return process_freebsd_mounts(self.get_mounts(), False)


@dataclass
class OtherDevicesInfoGetter:
    """Getter for platforms where devices cannot be listed."""

    platform: str = field(default_factory=lambda: sys.platform)

    def _refuse(self, what: str) -> NoReturn:
        message = f"Only Linux platform is supported for listing {what}"
        _log.debug("%s (platform %s)", message, self.platform)
        raise UnsupportedPlatformError(message, self.platform)

    def get_devices_info(self) -> list[Device]:
        self._refuse("devices")

    def get_mounts(self) -> list[Device]:
        self._refuse("mount points")


def default_getter() -> DevicesInfoGetter:
    """Return the devices getter suitable for the running platform."""
    if sys.platform.startswith("linux"):
        return LinuxDevicesInfoGetter()
    if sys.platform.startswith("freebsd"):
        return FreeBSDDevicesInfoGetter()
    return OtherDevicesInfoGetter()