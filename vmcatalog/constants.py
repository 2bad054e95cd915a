"""Global constants and path configuration for vm-catalog."""

from __future__ import annotations

import os
import re
from pathlib import Path
from types import MappingProxyType

DEFAULT_CONFIG_PATH = Path("/config/remotes.yaml")

# DATA_DIR provides a single mount point for all persistent data.
_DATA_DIR = os.environ.get("DATA_DIR")
if _DATA_DIR:
    DEFAULT_CACHE_DIR = Path(_DATA_DIR) / "cache"
else:
    DEFAULT_CACHE_DIR = Path("/var/cache/vm-catalog")

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in {"1", "true", "yes", "on"}

USER_AGENT = "vm-catalog/1.0"

RELEASE_REMOTE = "release"
DAILY_REMOTE = "daily"

DEFAULT_REMOTES = (
    (RELEASE_REMOTE, "https://cloud-images.ubuntu.com/releases/"),
    (DAILY_REMOTE, "https://cloud-images.ubuntu.com/daily/"),
)
REMOTE_URL_SCHEMES = ("http://", "https://", "file://")

DEFAULT_MANIFEST_TTL = "300"
DEFAULT_BLUEPRINTS_TTL = "900"
DEFAULT_BLUEPRINTS_URL = "https://codeload.github.com/canonical/multipass-blueprints/zip/refs/heads/main"
DEFAULT_DOWNLOAD_TIMEOUT = "30"
DEFAULT_DOWNLOAD_RETRIES = "3"

# simplestreams
INDEX_PATH = "streams/v1/index.json"
IMAGE_DOWNLOADS_DATATYPE = "image-downloads"
IMAGE_ITEM_KEYS = ("disk1.img", "uefi1.img")
KERNEL_ITEM_KEYS = ("vmlinuz", "kernel")
INITRD_ITEM_KEYS = ("initrd",)
DEFAULT_ALIAS = "default"

# blueprints
BLUEPRINTS_ARCHIVE_NAME = "blueprints.zip"
BLUEPRINT_DIR_VERSION = "v1"
BLUEPRINT_SUFFIXES = (".yaml", ".yml")  # preferred first
BLUEPRINT_IMAGE_SCHEMES = {"http", "https", "file"}
YAML_NULL_SCALARS = frozenset({"", "~", "null", "Null", "NULL"})
MIN_CPU_CORES = 1
MIN_MEMORY_SIZE = "128M"
MIN_DISK_SIZE = "512M"

HOSTNAME_RE = re.compile(r"^([a-zA-Z]|[a-zA-Z][a-zA-Z0-9\-]*[a-zA-Z0-9])$")
SIZE_RE = re.compile(r"^(\d+)(?:([KMGTkmgt])(?:i?[Bb])?|[Bb])?$")
SIZE_UNITS = (("T", 1024**4), ("G", 1024**3), ("M", 1024**2), ("K", 1024))

ARCH_ALIASES = MappingProxyType(
    {
        "amd64": "x86_64",
        "x64": "x86_64",
        "arm64": "aarch64",
        "armv8": "aarch64",
        "armhf": "armv7l",
        "ppc64le": "ppc64",
        "ppc64el": "ppc64",
        "powerpc64": "ppc64",
        "riscv": "riscv64",
    }
)

# Canonical arch name -> architecture tag used by simplestreams products.
SIMPLESTREAMS_ARCHES = MappingProxyType(
    {
        "x86_64": "amd64",
        "aarch64": "arm64",
        "armv7l": "armhf",
        "ppc64": "ppc64el",
        "s390x": "s390x",
        "riscv64": "riscv64",
    }
)
