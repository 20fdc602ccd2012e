from __future__ import annotations

import fcntl
import os

from .errors import ConnectivityError

# From <linux/kvm.h>: _IO(KVMIO, 0x00) with KVMIO = 0xAE.
KVM_GET_API_VERSION = 0xAE00
# The KVM API has been frozen at 12 since Linux 2.6.22.
KVM_API_VERSION = 12


class KvmHandle:
    """Open file descriptor on the KVM device."""

    def __init__(self, fd: int, path: str, api_version: int) -> None:
        self.fd = fd
        self.path = path
        self.api_version = api_version

    @property
    def closed(self) -> bool:
        return self.fd < 0

    def close(self) -> None:
        if self.fd >= 0:
            os.close(self.fd)
            self.fd = -1

    def __repr__(self) -> str:
        return f"KvmHandle(path={self.path!r}, api_version={self.api_version})"


def open_kvm(path: str = "/dev/kvm") -> KvmHandle:
    try:
        fd = os.open(path, os.O_RDWR | os.O_CLOEXEC)
    except OSError as e:
        raise ConnectivityError("KVM", f"cannot open {path}: {e.strerror or e}") from e

    try:
        version = fcntl.ioctl(fd, KVM_GET_API_VERSION)
    except OSError as e:
        os.close(fd)
        raise ConnectivityError("KVM", f"KVM_GET_API_VERSION failed: {e.strerror or e}") from e

    if version != KVM_API_VERSION:
        os.close(fd)
        raise ConnectivityError("KVM", f"unsupported KVM API version {version} (expected {KVM_API_VERSION})")

    return KvmHandle(fd, path, version)
