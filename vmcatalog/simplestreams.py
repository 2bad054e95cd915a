"""Parsing of the two-tier simplestreams catalog protocol (index + manifest)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vmcatalog.constants import (
    IMAGE_DOWNLOADS_DATATYPE,
    IMAGE_ITEM_KEYS,
    INITRD_ITEM_KEYS,
    KERNEL_ITEM_KEYS,
    SIMPLESTREAMS_ARCHES,
)
from vmcatalog.exceptions import EmptyManifestError, ManifestError
from vmcatalog.models import ImageRecord
from vmcatalog.utils import log


def _load_json(payload: bytes, what: str) -> Dict[str, Any]:
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise ManifestError(f"Invalid {what} JSON: {exc}")
    if not isinstance(data, dict):
        raise ManifestError(f"The {what} must be a JSON object")
    return data


def _first_item(items: Dict[str, Any], keys) -> Optional[Dict[str, Any]]:
    for key in keys:
        item = items.get(key)
        if isinstance(item, dict):
            return item
    return None


@dataclass
class SimpleStreamsIndex:
    manifest_path: str
    updated_at: str = ""

    @classmethod
    def from_json(cls, payload: bytes) -> "SimpleStreamsIndex":
        data = _load_json(payload, "index")
        entries = data.get("index")
        if not isinstance(entries, dict):
            raise ManifestError("No 'index' mapping found in index")
        for entry in entries.values():
            if not isinstance(entry, dict):
                continue
            if entry.get("datatype") == IMAGE_DOWNLOADS_DATATYPE and isinstance(entry.get("path"), str):
                return cls(manifest_path=entry["path"], updated_at=str(entry.get("updated", "")))
        raise ManifestError(f"No {IMAGE_DOWNLOADS_DATATYPE} entry found in index")


def _records_for_product(product: Dict[str, Any], stream_location: str) -> List[ImageRecord]:
    """Return one record per usable version, newest first.

    Only the newest usable version carries the product aliases.
    """
    aliases = tuple(alias.strip() for alias in str(product.get("aliases") or "").split(",") if alias.strip())
    versions = product["versions"]
    if not isinstance(versions, dict):
        raise TypeError("'versions' must be a mapping")

    records: List[ImageRecord] = []
    for version_string in sorted(versions, reverse=True):
        items = versions[version_string]["items"]
        image = _first_item(items, IMAGE_ITEM_KEYS)
        if image is None:
            continue
        kernel = _first_item(items, KERNEL_ITEM_KEYS)
        initrd = _first_item(items, INITRD_ITEM_KEYS)
        records.append(
            ImageRecord(
                aliases=aliases if not records else (),
                os=str(product["os"]),
                release=str(product["release"]),
                release_title=str(product.get("release_title", product["release"])),
                supported=bool(product.get("supported", False)),
                image_location=str(image["path"]),
                kernel_location=str(kernel["path"]) if kernel else "",
                initrd_location=str(initrd["path"]) if initrd else "",
                id=str(image["sha256"]),
                stream_location=stream_location,
                version=str(version_string),
                size=int(image.get("size", -1)),
                verify=True,
            )
        )
    return records


@dataclass
class Manifest:
    updated_at: str
    products: List[ImageRecord]
    image_records: Dict[str, ImageRecord] = field(default_factory=dict)

    @classmethod
    def from_json(cls, payload: bytes, arch: str, stream_location: str = "") -> "Manifest":
        data = _load_json(payload, "manifest")
        products_raw = data.get("products")
        if not isinstance(products_raw, dict) or not products_raw:
            raise ManifestError("No products found in manifest")

        product_arch = SIMPLESTREAMS_ARCHES.get(arch, arch)
        products: List[ImageRecord] = []
        image_records: Dict[str, ImageRecord] = {}
        seen_ids = set()

        for product_name, product in products_raw.items():
            if not isinstance(product, dict):
                log("WARN", f"Skipping malformed product '{product_name}': not a mapping")
                continue
            if product.get("arch") != product_arch:
                continue
            try:
                records = _records_for_product(product, stream_location)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                log("WARN", f"Skipping malformed product '{product_name}': {exc!r}")
                continue

            for record in records:
                if record.id in seen_ids:
                    log("DEBUG", f"Duplicate image id {record.id} in '{product_name}' ignored")
                    continue
                seen_ids.add(record.id)
                products.append(record)
                for alias in record.aliases:
                    if alias in image_records:
                        log("DEBUG", f"Alias '{alias}' already taken; ignored for '{product_name}'")
                        continue
                    image_records[alias] = record

        if not products:
            raise EmptyManifestError("No supported products found in manifest")
        return cls(updated_at=str(data.get("updated", "")), products=products, image_records=image_records)
