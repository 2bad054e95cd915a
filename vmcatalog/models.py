"""Data models for vm-catalog."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class RemoteDescriptor:
    name: str
    base_url: str

    def __post_init__(self):
        if not self.base_url.endswith("/"):
            object.__setattr__(self, "base_url", self.base_url + "/")


@dataclass(frozen=True)
class ImageRecord:
    aliases: Tuple[str, ...]
    os: str
    release: str
    release_title: str
    supported: bool
    image_location: str
    kernel_location: str
    initrd_location: str
    id: str  # content-id, usually a sha256
    stream_location: str
    version: str
    size: int = -1
    verify: bool = False

    def with_location_resolved(self, base_url: str) -> "ImageRecord":
        """Return a copy whose artifact locations are absolute URLs."""

        def _resolve(location: str) -> str:
            return base_url + location if location else ""

        return replace(
            self,
            image_location=_resolve(self.image_location),
            kernel_location=_resolve(self.kernel_location),
            initrd_location=_resolve(self.initrd_location),
        )


class QueryType(Enum):
    ALIAS = "alias"
    HTTP_DOWNLOAD = "http"
    LOCAL_FILE = "file"


@dataclass(frozen=True)
class Query:
    release: str = ""
    remote_name: str = ""
    allow_unsupported: bool = False
    query_type: QueryType = QueryType.ALIAS


@dataclass(frozen=True)
class ResourceLimits:
    """Blueprint minimums; sizes are bytes, the ``*_text`` fields keep the original spelling."""

    min_cpus: Optional[int] = None
    min_mem: Optional[int] = None
    min_disk: Optional[int] = None
    min_mem_text: str = ""
    min_disk_text: str = ""


@dataclass
class VirtualMachineDescription:
    num_cores: int = 0  # 0 = unset
    mem_size: int = 0  # bytes, 0 = unset
    disk_space: int = 0  # bytes, 0 = unset
    vm_name: str = ""
    image: Optional[ImageRecord] = None
    vendor_data_config: Optional[Dict[str, Any]] = None
