"""Blueprint catalog: named VM presets published as a zip bundle of YAML documents."""

from __future__ import annotations

import copy
import time
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmcatalog.cache import CatalogCache
from vmcatalog.constants import (
    BLUEPRINT_DIR_VERSION,
    BLUEPRINT_IMAGE_SCHEMES,
    BLUEPRINT_SUFFIXES,
    BLUEPRINTS_ARCHIVE_NAME,
    MIN_CPU_CORES,
    MIN_DISK_SIZE,
    MIN_MEMORY_SIZE,
    YAML_NULL_SCALARS,
)
from vmcatalog.constraints import apply_minimums
from vmcatalog.exceptions import (
    BlueprintArchiveError,
    FetchError,
    IncompatibleBlueprintError,
    InvalidBlueprintError,
    NotFoundError,
)
from vmcatalog.models import ImageRecord, Query, QueryType, ResourceLimits, VirtualMachineDescription
from vmcatalog.utils import ensure_directory, host_arch, log, normalize_arch, parse_size_to_bytes, valid_hostname


@dataclass(frozen=True)
class Blueprint:
    name: str
    description: str
    version: str
    runs_on: Tuple[str, ...] = ()
    query: Query = field(default_factory=Query)
    limits: ResourceLimits = field(default_factory=ResourceLimits)
    vendor_data: Optional[Dict[str, Any]] = None
    timeout: int = 0

    def runs_on_arch(self, arch: str) -> bool:
        return not self.runs_on or arch in self.runs_on

    def image_info(self) -> ImageRecord:
        return ImageRecord(
            aliases=(self.name,),
            os="",
            release="",
            release_title=self.description,
            supported=True,
            image_location="",
            kernel_location="",
            initrd_location="",
            id="",
            stream_location="",
            version=self.version,
        )


def _invalid_name_message(name: str) -> str:
    return f"Invalid Blueprint name '{name}': must be a valid host name"


def _optional(data: Dict[str, Any], key: str) -> Any:
    """Return ``data[key]``, treating YAML null spellings as absent."""
    value = data.get(key)
    if isinstance(value, str) and value in YAML_NULL_SCALARS:
        return None
    return value


def _required_string(data: Dict[str, Any], key: str, name: str) -> str:
    if key not in data:
        raise InvalidBlueprintError(f"The '{key}' key is required for the {name} Blueprint")
    value = _optional(data, key)
    if not isinstance(value, str):
        raise InvalidBlueprintError(f"Cannot convert '{key}' key for the {name} Blueprint")
    return value


def _runs_on(data: Dict[str, Any], name: str) -> Tuple[str, ...]:
    raw = _optional(data, "runs-on")
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(arch, str) for arch in raw):
        raise InvalidBlueprintError(f"Cannot convert 'runs-on' key for the {name} Blueprint")
    return tuple(normalize_arch(arch) for arch in raw)


def _query_for_image(image: Any) -> Query:
    if image is None:
        return Query(release="")
    if not isinstance(image, str) or not image.strip():
        raise InvalidBlueprintError("Invalid image in Blueprint")

    image = image.strip()
    if "://" in image:
        scheme = urlparse(image).scheme.lower()
        if scheme not in BLUEPRINT_IMAGE_SCHEMES:
            raise InvalidBlueprintError("Unsupported image scheme in Blueprint")
        query_type = QueryType.LOCAL_FILE if scheme == "file" else QueryType.HTTP_DOWNLOAD
        return Query(release=image, query_type=query_type)

    tokens = image.split(":")
    if len(tokens) == 1:
        return Query(release=tokens[0])
    if len(tokens) == 2:
        return Query(release=tokens[1], remote_name=tokens[0])
    raise InvalidBlueprintError("Invalid image in Blueprint")


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    return None


def _size_at_least(value: Any, floor: str) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    try:
        size = parse_size_to_bytes(str(value))
    except ValueError:
        return None
    return size if size >= parse_size_to_bytes(floor) else None


def _limits(raw: Any) -> ResourceLimits:
    if raw is None:
        return ResourceLimits()
    if not isinstance(raw, dict):
        raise InvalidBlueprintError("Limits in Blueprint are invalid")

    min_cpus = None
    if "min-cpu" in raw:
        min_cpus = _positive_int(raw["min-cpu"])
        if min_cpus is None or min_cpus < MIN_CPU_CORES:
            raise InvalidBlueprintError("Minimum CPU value in Blueprint is invalid")

    min_mem = None
    if "min-mem" in raw:
        min_mem = _size_at_least(raw["min-mem"], MIN_MEMORY_SIZE)
        if min_mem is None:
            raise InvalidBlueprintError("Minimum memory size value in Blueprint is invalid")

    min_disk = None
    if "min-disk" in raw:
        min_disk = _size_at_least(raw["min-disk"], MIN_DISK_SIZE)
        if min_disk is None:
            raise InvalidBlueprintError("Minimum disk space value in Blueprint is invalid")

    return ResourceLimits(
        min_cpus=min_cpus,
        min_mem=min_mem,
        min_disk=min_disk,
        min_mem_text=str(raw.get("min-mem", "")),
        min_disk_text=str(raw.get("min-disk", "")),
    )


def _inline_vendor_data(document: str, name: str) -> Any:
    # The validated tree keeps scalars as strings; cloud-init needs them typed.
    try:
        return yaml.safe_load(document)["instances"][name]["cloud-init"]["vendor-data"]
    except (yaml.YAMLError, ValueError, KeyError, TypeError):
        return None


def _vendor_data(raw: Any, name: str, document: str) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    error = f"Cannot convert cloud-init data for the {name} Blueprint"
    if not isinstance(raw, dict):
        raise InvalidBlueprintError(error)
    vendor_data = _optional(raw, "vendor-data")
    if vendor_data is None:
        return None
    if isinstance(vendor_data, str):
        try:
            vendor_data = yaml.safe_load(vendor_data)
        except yaml.YAMLError:
            raise InvalidBlueprintError(error)
    elif isinstance(vendor_data, dict):
        vendor_data = _inline_vendor_data(document, name)
    if not isinstance(vendor_data, dict):
        raise InvalidBlueprintError(error)
    return vendor_data


def _timeout(instance: Dict[str, Any]) -> int:
    raw = _optional(instance, "timeout")
    if raw is None:
        return 0
    timeout = _positive_int(raw)
    if timeout is None:
        raise InvalidBlueprintError("Invalid timeout given in Blueprint")
    return timeout


def parse_blueprint(name: str, document: str) -> Blueprint:
    """Validate one Blueprint document; any invalid field rejects the whole Blueprint.

    The document is loaded with ``yaml.BaseLoader`` so scalars such as
    ``version: 1.10`` or ``description: yes`` keep their literal text.
    """
    if not valid_hostname(name):
        raise InvalidBlueprintError(_invalid_name_message(name))
    try:
        data = yaml.load(document, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise InvalidBlueprintError(f"Cannot parse the {name} Blueprint: {exc}")
    if not isinstance(data, dict):
        raise InvalidBlueprintError(f"Cannot parse the {name} Blueprint: expected a mapping")

    description = _required_string(data, "description", name)
    version = _required_string(data, "version", name)
    runs_on = _runs_on(data, name)

    instances = _optional(data, "instances") or {}
    instance = _optional(instances, name) if isinstance(instances, dict) else None
    if instance is None:
        instance = {}
    if not isinstance(instance, dict):
        raise InvalidBlueprintError(f"Cannot convert 'instances' key for the {name} Blueprint")

    return Blueprint(
        name=name,
        description=description,
        version=version,
        runs_on=runs_on,
        query=_query_for_image(_optional(instance, "image")),
        limits=_limits(_optional(instance, "limits")),
        vendor_data=_vendor_data(_optional(instance, "cloud-init"), name, document),
        timeout=_timeout(instance),
    )


def read_bundle(archive_path: Path) -> Dict[str, str]:
    """Map Blueprint name -> YAML text for every ``*/v1/<name>.yaml`` entry of the zip.

    When a name is published as both ``.yaml`` and ``.yml`` the ``.yaml`` file wins.
    """
    blueprints: Dict[str, str] = {}
    sources: Dict[str, PurePosixPath] = {}
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                path = PurePosixPath(info.filename)
                suffix = path.suffix.lower()
                if path.parent.name != BLUEPRINT_DIR_VERSION or suffix not in BLUEPRINT_SUFFIXES:
                    continue
                previous = sources.get(path.stem)
                if previous is not None:
                    if BLUEPRINT_SUFFIXES.index(suffix) >= BLUEPRINT_SUFFIXES.index(previous.suffix.lower()):
                        log("DEBUG", f"Blueprint '{path.stem}' listed twice; keeping {previous}, ignoring {path}")
                        continue
                    log("DEBUG", f"Blueprint '{path.stem}' listed twice; keeping {path}, ignoring {previous}")
                sources[path.stem] = path
                blueprints[path.stem] = archive.read(info).decode("utf-8")
    except (zipfile.BadZipFile, OSError, UnicodeDecodeError) as exc:
        raise BlueprintArchiveError(str(exc))
    return blueprints


def _on_fetch_failure(url: str, exc: FetchError) -> None:
    if isinstance(exc, BlueprintArchiveError):
        log("ERROR", f"Error extracting Blueprints zip file: {exc}")
    else:
        log("ERROR", f"Error fetching Blueprints: {exc}")


class BlueprintProvider:
    """Download, cache and resolve Blueprints.

    Construction never fails because the bundle could not be downloaded or
    extracted; the provider then serves a stale bundle (from memory or from
    the cache directory) or no Blueprints at all.
    """

    def __init__(
        self,
        blueprints_url: str,
        downloader,
        cache_dir: Path,
        blueprints_ttl: float,
        arch: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.blueprints_url = blueprints_url
        self.downloader = downloader
        self.cache_dir = Path(cache_dir)
        self.archive_path = self.cache_dir / BLUEPRINTS_ARCHIVE_NAME
        self.arch = normalize_arch(arch) if arch else host_arch()
        self._cache = CatalogCache(
            self._download_blueprints,
            blueprints_ttl,
            clock=clock,
            on_failure=_on_fetch_failure,
        )
        ensure_directory(self.cache_dir)
        self._adopt_archive_on_disk()
        self._update_blueprints()

    def _adopt_archive_on_disk(self) -> None:
        if not self.archive_path.exists():
            return
        try:
            self._cache.store(self.blueprints_url, read_bundle(self.archive_path))
        except BlueprintArchiveError as exc:
            log("WARN", f"Ignoring unreadable Blueprints archive {self.archive_path}: {exc}")
        else:
            log("DEBUG", f"Loaded Blueprints from {self.archive_path}")

    def _download_blueprints(self, url: str) -> Dict[str, str]:
        staging = self.archive_path.with_name(self.archive_path.name + ".new")
        try:
            self.downloader.download_to(url, staging)
            blueprints = read_bundle(staging)
        except FetchError as exc:
            staging.unlink(missing_ok=True)
            if self._cache.get(url) is not None:
                raise
            # Nothing to fall back on: remember the empty bundle until the TTL expires.
            _on_fetch_failure(url, exc)
            return {}
        staging.replace(self.archive_path)
        return blueprints

    def _update_blueprints(self) -> Dict[str, str]:
        try:
            return self._cache.ensure_fresh(self.blueprints_url)
        except FetchError as exc:
            _on_fetch_failure(self.blueprints_url, exc)
            return {}

    def _blueprint_for(self, name: str) -> Blueprint:
        blueprints = self._update_blueprints()
        if name not in blueprints:
            raise NotFoundError(f"Blueprint '{name}' does not exist")
        blueprint = parse_blueprint(name, blueprints[name])
        if not blueprint.runs_on_arch(self.arch):
            raise IncompatibleBlueprintError(name)
        return blueprint

    def fetch_blueprint_for(self, name: str, vm_desc: VirtualMachineDescription) -> Query:
        blueprint = self._blueprint_for(name)
        apply_minimums(vm_desc, blueprint.limits)
        if blueprint.vendor_data is not None:
            vm_desc.vendor_data_config = copy.deepcopy(blueprint.vendor_data)
        return blueprint.query

    def info_for(self, name: str) -> ImageRecord:
        return self._blueprint_for(name).image_info()

    def all_blueprints(self) -> List[ImageRecord]:
        infos: List[ImageRecord] = []
        for name, document in sorted(self._update_blueprints().items()):
            if not valid_hostname(name):
                log("ERROR", _invalid_name_message(name))
                continue
            try:
                blueprint = parse_blueprint(name, document)
            except InvalidBlueprintError as exc:
                log("ERROR", f"Invalid Blueprint: {exc}")
                continue
            if not blueprint.runs_on_arch(self.arch):
                log("DEBUG", f"Blueprint '{name}' does not run on {self.arch}; skipped")
                continue
            infos.append(blueprint.image_info())
        return infos

    def blueprint_timeout(self, name: str) -> int:
        blueprints = self._update_blueprints()
        if name not in blueprints:
            return 0
        return parse_blueprint(name, blueprints[name]).timeout

    def name_from_blueprint(self, name: str) -> str:
        blueprints = self._update_blueprints()
        if name in blueprints:
            return name
        lowered = name.lower()
        for candidate in blueprints:
            if candidate.lower() == lowered:
                return candidate
        return ""
