"""Utility functions for vm-catalog."""

from __future__ import annotations

import os
import platform
import tempfile
import time
from pathlib import Path
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from vmcatalog.constants import (
    _LOG_VERBOSE,
    ARCH_ALIASES,
    HOSTNAME_RE,
    SIZE_RE,
    SIZE_UNITS,
    TRUTHY,
    USER_AGENT,
)
from vmcatalog.exceptions import ConfigError, DownloadError


def log(level: str, message: str) -> None:
    """Lightweight structured logging with a coloured level tag."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def parse_int_env(name: str, default: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ConfigError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ConfigError(f"{name} must be <= {max_val} (got {value})")
    return value


def parse_size_to_bytes(raw: str) -> int:
    """Convert a size such as '512M', '2G' or '25GiB' to bytes.

    Raises ValueError for anything that is not a whole number with an optional
    K, M, G or T suffix.
    """
    match = SIZE_RE.match(str(raw).strip())
    if not match:
        raise ValueError(f"Invalid size '{raw}'")
    number, unit = match.groups()
    multiplier = dict(SIZE_UNITS).get(unit.upper(), 1) if unit else 1
    return int(number) * multiplier


def format_size(num_bytes: int) -> str:
    """Render bytes with the largest unit that divides them exactly."""
    for suffix, multiplier in SIZE_UNITS:
        if num_bytes and num_bytes % multiplier == 0:
            return f"{num_bytes // multiplier}{suffix}"
    return str(num_bytes)


def valid_hostname(name: str) -> bool:
    return bool(HOSTNAME_RE.match(name))


def normalize_arch(arch: str) -> str:
    arch_lower = arch.strip().lower()
    return ARCH_ALIASES.get(arch_lower, arch_lower)


def host_arch() -> str:
    return normalize_arch(platform.machine() or "x86_64")


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _open_url(url: str, timeout: float):
    req = Request(url, headers={"User-Agent": USER_AGENT})
    try:
        return urlopen(req, timeout=timeout)
    except HTTPError as exc:
        raise DownloadError(url, f"HTTP {exc.code} {exc.reason}")
    except URLError as exc:
        raise DownloadError(url, str(exc.reason))
    except OSError as exc:
        raise DownloadError(url, str(exc))


def fetch_url(url: str, timeout: float = 30.0) -> bytes:
    """Return the body of a URL (http, https or file)."""
    log("DEBUG", f"Fetching {url}")
    response = _open_url(url, timeout)
    try:
        return response.read()
    except OSError as exc:
        raise DownloadError(url, str(exc))
    finally:
        response.close()


def download_file(url: str, destination: Path, label: str = "Downloading", timeout: float = 30.0) -> None:
    """Download a URL to a file; the destination only appears once complete."""
    log("INFO", f"{label}: {url}")
    response = _open_url(url, timeout)
    downloaded = 0
    start_time = time.time()

    with tempfile.NamedTemporaryFile(delete=False, dir=destination.parent) as tmp:
        tmp_path = Path(tmp.name)
        try:
            chunk_size = 1024 * 256  # 256 KiB
            while True:
                try:
                    chunk = response.read(chunk_size)
                except OSError as exc:
                    raise DownloadError(url, str(exc))
                if not chunk:
                    break
                tmp.write(chunk)
                downloaded += len(chunk)
            tmp.flush()
            tmp_path.replace(destination)
            elapsed = time.time() - start_time
            log("DEBUG", f"Downloaded {downloaded / 1024:.1f} KiB in {elapsed:.1f}s")
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        finally:
            response.close()


def with_retry(func, url: str, retries: int):
    """Call ``func()`` up to ``retries`` times, backing off between DownloadErrors."""
    for attempt in range(1, retries + 1):
        try:
            return func()
        except DownloadError as exc:
            if attempt == retries:
                raise
            delay = 2 ** (attempt - 1)
            log("WARN", f"Download attempt {attempt}/{retries} failed for {url}: {exc.reason}; retrying in {delay}s")
            time.sleep(delay)


class URLDownloader:
    """Timeout-bounded downloader shared by every catalog source."""

    def __init__(self, timeout: float = 30.0, retries: int = 1) -> None:
        self.timeout = timeout
        self.retries = max(1, retries)

    def download(self, url: str) -> bytes:
        return with_retry(lambda: fetch_url(url, timeout=self.timeout), url, self.retries)

    def download_to(self, url: str, destination: Path, label: str = "Downloading") -> None:
        with_retry(
            lambda: download_file(url, destination, label=label, timeout=self.timeout),
            url,
            self.retries,
        )
