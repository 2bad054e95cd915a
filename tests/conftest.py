"""Shared test fixtures: fake catalogs, downloaders, clocks and Blueprint bundles."""

from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import MagicMock

import pytest

from vmcatalog.exceptions import DownloadError
from vmcatalog.models import RemoteDescriptor

RELEASE_URL = "https://images.example.com/releases/"
DAILY_URL = "https://images.example.com/daily/"
MANIFEST_PATH = "streams/v1/com.example:released:download.json"

BIONIC_HASH = "1797c5c82016c1e65f4008fcf89deae3a044ef76087a9ec5b907c6d64a3609ac"
XENIAL_HASH = "8842e7a8adb01c7a30cc702b01a5330a1951b12042816e87efd24b61c5e2239f"
ZESTY_HASH = "ab115b83e7a8bebf3d3a02bf55ad0cb75a0ed515fcbc65fb0c9abe76c752921c"
DAILY_BIONIC_HASH = "c09f123b9589c504fe39ec6e9ebe5188c67be7d1fc4fb80c969bf877f5a8333a"


def product(
    release: str,
    aliases: str,
    versions: Dict[str, str],
    arch: str = "amd64",
    supported: bool = True,
    release_title: Optional[str] = None,
    kernel: bool = False,
) -> dict:
    """Build one simplestreams product; ``versions`` maps version -> image sha256."""
    version_map = {}
    for version, sha256 in versions.items():
        items = {
            "disk1.img": {
                "path": f"server/{release}/{version}/{release}-server-cloudimg-{arch}-disk1.img",
                "sha256": sha256,
                "size": 1024,
            }
        }
        if kernel:
            items["vmlinuz"] = {"path": f"server/{release}/{version}/unpacked/vmlinuz", "sha256": "k" + sha256[1:]}
            items["initrd"] = {"path": f"server/{release}/{version}/unpacked/initrd", "sha256": "i" + sha256[1:]}
        version_map[version] = {"items": items}
    return {
        "aliases": aliases,
        "arch": arch,
        "os": "ubuntu",
        "release": release,
        "release_title": release_title or release.capitalize(),
        "supported": supported,
        "versions": version_map,
    }


def index_json(path: str = MANIFEST_PATH) -> bytes:
    return json.dumps(
        {
            "format": "index:1.0",
            "index": {
                "com.example:released:download": {"datatype": "image-downloads", "path": path},
            },
        }
    ).encode()


def manifest_json(products: Dict[str, dict]) -> bytes:
    return json.dumps({"format": "products:1.0", "updated": "Wed, 20 May 2020", "products": products}).encode()


def release_products() -> Dict[str, dict]:
    return {
        "com.example:server:18.04:amd64": product("bionic", "18.04,b,bionic,lts,default", {"20180418": BIONIC_HASH}, kernel=True),
        "com.example:server:16.04:amd64": product("xenial", "16.04,x,xenial", {"20170516": XENIAL_HASH}),
        "com.example:server:17.04:amd64": product("zesty", "17.04,z,zesty", {"20170412": ZESTY_HASH}, supported=False),
        "com.example:server:18.04:arm64": product("bionic", "18.04,b,bionic", {"20180418": "f" * 64}, arch="arm64"),
    }


def daily_products() -> Dict[str, dict]:
    return {
        "com.example:server:18.04:amd64": product("bionic", "18.04,b,bionic,devel", {"20180419": DAILY_BIONIC_HASH}),
    }


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def url_map() -> Dict[str, bytes]:
    """URL -> body served by ``fake_downloader``; tests may edit it."""
    return {
        RELEASE_URL + "streams/v1/index.json": index_json(),
        RELEASE_URL + MANIFEST_PATH: manifest_json(release_products()),
        DAILY_URL + "streams/v1/index.json": index_json(),
        DAILY_URL + MANIFEST_PATH: manifest_json(daily_products()),
    }


@pytest.fixture
def fake_downloader(url_map):
    """MagicMock downloader serving bodies from ``url_map`` and failing for unknown URLs."""

    def _download(url: str) -> bytes:
        if url not in url_map:
            raise DownloadError(url, "HTTP 404 Not Found")
        return url_map[url]

    def _download_to(url: str, destination: Path, label: str = "Downloading") -> None:
        destination.write_bytes(_download(url))

    downloader = MagicMock()
    downloader.download.side_effect = _download
    downloader.download_to.side_effect = _download_to
    return downloader


@pytest.fixture
def remotes():
    return [RemoteDescriptor("release", RELEASE_URL), RemoteDescriptor("daily", DAILY_URL)]


BLUEPRINT1 = """\
description: The first test blueprint
version: 0.1
runs-on: [x86_64]
instances:
  test-blueprint1:
    limits:
      min-cpu: 2
      min-mem: 2G
      min-disk: 25G
    timeout: 600
    cloud-init:
      vendor-data: |
        runcmd:
          - echo "Have fun!"
"""

BLUEPRINT2 = """\
description: Another test blueprint but without an image
version: 0.1
instances:
  test-blueprint2:
    image: daily:bionic
    limits:
      min-cpu: 4
      min-mem: 4G
      min-disk: 50G
"""


def make_bundle(path: Path, documents: Dict[str, str], prefix: str = "blueprints-main/v1/") -> bytes:
    """Write a Blueprint zip bundle to ``path`` and return its bytes."""
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("blueprints-main/README.md", "# Blueprints\n")
        for filename, text in documents.items():
            archive.writestr(prefix + filename, text)
    return path.read_bytes()


@pytest.fixture
def bundle_bytes(tmp_path):
    """Return a builder producing zip bytes from ``{filename: yaml}``."""

    def _build(documents: Dict[str, str], prefix: str = "blueprints-main/v1/") -> bytes:
        return make_bundle(tmp_path / "bundle-src.zip", documents, prefix)

    return _build


@pytest.fixture
def mock_env(monkeypatch):
    """Helper to set environment variables for tests."""

    def _set(**kwargs):
        for key, value in kwargs.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, str(value))

    return _set


# All environment variables that parse_env() reads, cleared for a clean slate.
_PARSE_ENV_VARS = [
    "CACHE_DIR",
    "REMOTES_CONFIG",
    "MANIFEST_TTL",
    "BLUEPRINTS_URL",
    "BLUEPRINTS_TTL",
    "ARCH",
    "DOWNLOAD_TIMEOUT",
    "DOWNLOAD_RETRIES",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear every variable parse_env() reads and pin ARCH and the remotes file."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ARCH", "x86_64")
    monkeypatch.setenv("REMOTES_CONFIG", str(tmp_path / "no-remotes.yaml"))
