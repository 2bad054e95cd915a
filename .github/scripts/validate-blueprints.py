#!/usr/bin/env python3
"""Validate a Blueprint source tree: document correctness and image URL reachability."""

from __future__ import annotations

import sys
from pathlib import Path

import requests

from vmcatalog.blueprints import Blueprint, parse_blueprint
from vmcatalog.constants import BLUEPRINT_DIR_VERSION, BLUEPRINT_SUFFIXES
from vmcatalog.exceptions import InvalidBlueprintError
from vmcatalog.models import QueryType

REQUEST_TIMEOUT = 30
USER_AGENT = "vm-catalog/blueprint-validator (GitHub Actions)"


def find_documents(root: Path) -> dict[str, Path]:
    """Map Blueprint name -> document for every ``v1/<name>.yaml`` below ``root``."""
    documents: dict[str, Path] = {}
    for path in sorted(root.rglob("*")):
        if path.is_file() and path.parent.name == BLUEPRINT_DIR_VERSION and path.suffix.lower() in BLUEPRINT_SUFFIXES:
            documents[path.stem] = path
    return documents


# ── Phase 1: Document validation (collect-all) ───────────────────────


def validate_documents(documents: dict[str, Path]) -> tuple[list[Blueprint], list[str]]:
    blueprints: list[Blueprint] = []
    errors: list[str] = []
    for name, path in documents.items():
        try:
            blueprints.append(parse_blueprint(name, path.read_text()))
        except InvalidBlueprintError as exc:
            errors.append(f"[{name}] {exc}")
    return blueprints, errors


# ── Phase 2: Image URL reachability (collect-all) ────────────────────


def check_url(key: str, url: str) -> str | None:
    """Return an error string if the URL is unreachable, else None."""
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT

    try:
        resp = session.head(url, timeout=REQUEST_TIMEOUT, allow_redirects=True)
        if resp.status_code < 400:
            return None
        # Some servers reject HEAD
        if resp.status_code in (403, 405):
            resp = session.get(url, timeout=REQUEST_TIMEOUT, allow_redirects=True, stream=True)
            resp.close()
            if resp.status_code < 400:
                return None
        return f"[{key}] HTTP {resp.status_code} for {url}"
    except requests.RequestException as exc:
        return f"[{key}] {exc.__class__.__name__}: {exc} for {url}"


def validate_urls(blueprints: list[Blueprint]) -> list[str]:
    errors: list[str] = []
    for blueprint in blueprints:
        if blueprint.query.query_type != QueryType.HTTP_DOWNLOAD:
            continue
        err = check_url(blueprint.name, blueprint.query.release)
        if err:
            errors.append(err)
    return errors


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    root = Path(args[0]) if args else Path.cwd()
    print(f"Scanning {root}")
    documents = find_documents(root)
    if not documents:
        print(f"  ERROR: no {BLUEPRINT_DIR_VERSION}/*.yaml Blueprints found")
        return 1

    print("\n=== Phase 1: Document validation ===")
    blueprints, doc_errors = validate_documents(documents)
    if doc_errors:
        for e in doc_errors:
            print(f"  ERROR: {e}")
        print(f"\nDocument validation failed with {len(doc_errors)} error(s)")
        return 1
    print(f"  OK: {len(blueprints)} Blueprints, all documents valid")

    print("\n=== Phase 2: Image URL reachability ===")
    url_errors = validate_urls(blueprints)
    if url_errors:
        for e in url_errors:
            print(f"  ERROR: {e}")
        print(f"\nURL validation failed: {len(url_errors)} unreachable")
        return 1
    print("  OK: all image URLs reachable")

    print("\nAll checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
