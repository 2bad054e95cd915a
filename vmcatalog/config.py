"""Configuration loading and environment variable parsing for vm-catalog."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmcatalog.constants import (
    DEFAULT_BLUEPRINTS_TTL,
    DEFAULT_BLUEPRINTS_URL,
    DEFAULT_CACHE_DIR,
    DEFAULT_CONFIG_PATH,
    DEFAULT_DOWNLOAD_RETRIES,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_MANIFEST_TTL,
    DEFAULT_REMOTES,
    REMOTE_URL_SCHEMES,
    SIMPLESTREAMS_ARCHES,
)
from vmcatalog.exceptions import ConfigError
from vmcatalog.models import RemoteDescriptor
from vmcatalog.utils import get_env, host_arch, log, normalize_arch, parse_int_env


@dataclass
class CatalogConfig:
    cache_dir: Path
    remotes: List[RemoteDescriptor]
    manifest_ttl: int
    blueprints_url: str
    blueprints_ttl: int
    arch: str
    download_timeout: int
    download_retries: int


def load_remotes(config_path: Optional[Path] = None) -> List[RemoteDescriptor]:
    """Read the ordered remote list; a missing file means the built-in remotes."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    if not config_path.exists():
        log("DEBUG", f"No remotes config at {config_path}; using built-in remotes")
        return [RemoteDescriptor(name, url) for name, url in DEFAULT_REMOTES]

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Remotes config {config_path} contains invalid YAML: {exc}")
    if not isinstance(data, dict):
        raise ConfigError(f"Remotes config {config_path} must be a mapping")

    remotes_raw = data.get("remotes")
    if not isinstance(remotes_raw, dict) or not remotes_raw:
        raise ConfigError(f"Remotes config {config_path} must define a non-empty 'remotes' mapping")

    remotes: List[RemoteDescriptor] = []
    for name, entry in remotes_raw.items():
        if isinstance(entry, str):
            url = entry
        elif isinstance(entry, dict) and isinstance(entry.get("url"), str):
            url = entry["url"]
        else:
            raise ConfigError(f"Remote '{name}' needs a 'url' string")
        url = url.strip()
        if not url.startswith(REMOTE_URL_SCHEMES):
            raise ConfigError(
                f"Remote '{name}' has unsupported URL '{url}'. Use one of: {', '.join(REMOTE_URL_SCHEMES)}"
            )
        remotes.append(RemoteDescriptor(str(name), url))
    return remotes


def parse_env() -> CatalogConfig:
    cache_dir_raw = (get_env("CACHE_DIR") or "").strip()
    cache_dir = Path(cache_dir_raw).expanduser() if cache_dir_raw else DEFAULT_CACHE_DIR

    config_path_raw = (get_env("REMOTES_CONFIG") or "").strip()
    remotes = load_remotes(Path(config_path_raw) if config_path_raw else None)

    manifest_ttl = parse_int_env("MANIFEST_TTL", DEFAULT_MANIFEST_TTL, min_val=0)
    blueprints_ttl = parse_int_env("BLUEPRINTS_TTL", DEFAULT_BLUEPRINTS_TTL, min_val=0)

    blueprints_url = (get_env("BLUEPRINTS_URL") or DEFAULT_BLUEPRINTS_URL).strip()
    if not blueprints_url.startswith(REMOTE_URL_SCHEMES):
        raise ConfigError(f"Unsupported BLUEPRINTS_URL '{blueprints_url}'")

    arch_env = get_env("ARCH")
    arch = normalize_arch(arch_env) if arch_env and arch_env.strip() else host_arch()
    if arch not in SIMPLESTREAMS_ARCHES:
        supported = ", ".join(sorted(SIMPLESTREAMS_ARCHES.keys()))
        raise ConfigError(f"Unsupported ARCH '{arch_env or arch}'. Supported: {supported}")

    download_timeout = parse_int_env("DOWNLOAD_TIMEOUT", DEFAULT_DOWNLOAD_TIMEOUT, min_val=1)
    download_retries = parse_int_env("DOWNLOAD_RETRIES", DEFAULT_DOWNLOAD_RETRIES, min_val=1, max_val=10)

    return CatalogConfig(
        cache_dir=cache_dir,
        remotes=remotes,
        manifest_ttl=manifest_ttl,
        blueprints_url=blueprints_url,
        blueprints_ttl=blueprints_ttl,
        arch=arch,
        download_timeout=download_timeout,
        download_retries=download_retries,
    )
