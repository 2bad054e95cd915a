"""CLI entry points for vm-catalog."""

from __future__ import annotations

import argparse
import dataclasses
from typing import List, Optional, Tuple

from vmcatalog.blueprints import BlueprintProvider
from vmcatalog.config import CatalogConfig, parse_env
from vmcatalog.exceptions import CatalogError, NotFoundError
from vmcatalog.image_host import SimpleStreamsImageHost
from vmcatalog.models import ImageRecord, Query, QueryType, VirtualMachineDescription
from vmcatalog.utils import URLDownloader, format_size, get_env_bool, log, parse_size_to_bytes


def build_catalog(cfg: CatalogConfig) -> Tuple[SimpleStreamsImageHost, BlueprintProvider]:
    """Wire the image host and Blueprint provider from a resolved configuration."""
    downloader = URLDownloader(timeout=cfg.download_timeout, retries=cfg.download_retries)
    image_host = SimpleStreamsImageHost(cfg.remotes, downloader, cfg.manifest_ttl, arch=cfg.arch)
    blueprints = BlueprintProvider(
        cfg.blueprints_url,
        downloader,
        cfg.cache_dir / "blueprints",
        cfg.blueprints_ttl,
        arch=cfg.arch,
    )
    return image_host, blueprints


def parse_query(text: str, allow_unsupported: bool = False) -> Query:
    """Turn ``[remote:]release`` into a Query."""
    remote_name, sep, release = text.rpartition(":")
    if not sep:
        return Query(release=text, allow_unsupported=allow_unsupported)
    return Query(release=release, remote_name=remote_name, allow_unsupported=allow_unsupported)


def _print_records(rows: List[Tuple[str, ImageRecord]]) -> None:
    names = [f"{remote}:{','.join(record.aliases)}" if remote else ",".join(record.aliases) for remote, record in rows]
    width = max(len(name) for name in names)
    for name, (_, record) in zip(names, rows):
        print(f"  {name:<{width}}  {record.version:<10}  {record.release_title}")


def list_images(
    image_host: SimpleStreamsImageHost,
    blueprints: BlueprintProvider,
    remote_name: Optional[str] = None,
    allow_unsupported: bool = False,
) -> None:
    """Print every aliased image (optionally of a single remote) followed by the Blueprints."""
    if remote_name:
        rows = [(remote_name, record) for record in image_host.all_images_for(remote_name, allow_unsupported)]
    else:
        rows = []

        def _collect(remote: str, record: ImageRecord) -> None:
            if record.supported or allow_unsupported:
                rows.append((remote, record))

        image_host.for_each_entry_do(_collect)

    if rows:
        print("Images:")
        _print_records(rows)
    else:
        log("WARN", "No images found")

    if remote_name:
        return
    blueprint_rows = [("", record) for record in blueprints.all_blueprints()]
    if blueprint_rows:
        print("Blueprints:")
        _print_records(blueprint_rows)


def show_image(remote_name: str, record: ImageRecord) -> None:
    print(f"  remote:   {remote_name}")
    for field in dataclasses.fields(record):
        value = getattr(record, field.name)
        if isinstance(value, tuple):
            value = ",".join(value)
        print(f"  {field.name}: {value}")


def find(
    image_host: SimpleStreamsImageHost,
    blueprints: BlueprintProvider,
    text: str,
    allow_unsupported: bool = False,
) -> None:
    if text.endswith(":"):
        list_images(image_host, blueprints, remote_name=text[:-1], allow_unsupported=allow_unsupported)
        return
    if not text:
        list_images(image_host, blueprints, allow_unsupported=allow_unsupported)
        return

    query = parse_query(text, allow_unsupported)
    match = image_host.info_with_remote_for(query)
    if match is not None:
        show_image(*match)
        return
    if query.remote_name:
        raise NotFoundError(f'Unable to find an image matching "{text}"')
    show_image("blueprint", blueprints.info_for(query.release))


def resolve_blueprint(
    image_host: SimpleStreamsImageHost,
    blueprints: BlueprintProvider,
    name: str,
    vm_desc: VirtualMachineDescription,
) -> Query:
    """Merge a Blueprint into ``vm_desc`` and resolve its image when it names an alias."""
    blueprint_name = blueprints.name_from_blueprint(name)
    if not blueprint_name:
        raise NotFoundError(f"Blueprint '{name}' does not exist")
    query = blueprints.fetch_blueprint_for(blueprint_name, vm_desc)
    vm_desc.vm_name = vm_desc.vm_name or blueprint_name
    if query.query_type == QueryType.ALIAS:
        record = image_host.info_for(query)
        if record is None:
            raise NotFoundError(f'Unable to find an image matching "{query.release or "default"}"')
        vm_desc.image = record

    image = vm_desc.image.image_location if vm_desc.image else query.release
    timeout = blueprints.blueprint_timeout(blueprint_name)
    print(f"  Blueprint: {blueprint_name}")
    print(f"  Image:     {image}")
    print(f"  CPUs:      {vm_desc.num_cores or 'default'}")
    print(f"  Memory:    {format_size(vm_desc.mem_size) if vm_desc.mem_size else 'default'}")
    print(f"  Disk:      {format_size(vm_desc.disk_space) if vm_desc.disk_space else 'default'}")
    print(f"  Timeout:   {timeout or 'default'}")
    print(f"  Vendor-data: {'yes' if vm_desc.vendor_data_config else 'no'}")
    return query


def show_config(cfg: CatalogConfig) -> None:
    """Print the resolved catalog configuration and exit."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if field.name == "remotes":
            print(f"  {field.name}:")
            for remote in value:
                print(f"    {remote.name}: {remote.base_url}")
        else:
            print(f"  {field.name}: {value}")


def _vm_description(args: argparse.Namespace) -> VirtualMachineDescription:
    vm_desc = VirtualMachineDescription(vm_name=args.name or "")
    if args.cpus is not None:
        if args.cpus < 1:
            raise ValueError(f"Invalid number of CPUs '{args.cpus}'")
        vm_desc.num_cores = args.cpus
    if args.memory:
        vm_desc.mem_size = parse_size_to_bytes(args.memory)
    if args.disk:
        vm_desc.disk_space = parse_size_to_bytes(args.disk)
    return vm_desc


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="VM image and Blueprint catalog")
    parser.add_argument(
        "--find",
        nargs="?",
        const="",
        default=None,
        metavar="QUERY",
        help="List images and Blueprints, or resolve one [remote:]release (use 'remote:' to list one remote)",
    )
    parser.add_argument("--unsupported", action="store_true", help="Include unsupported images (or set ALLOW_UNSUPPORTED=1)")
    parser.add_argument("--blueprint", metavar="NAME", help="Resolve a Blueprint into an image and resources")
    parser.add_argument("--name", help="Instance name used with --blueprint")
    parser.add_argument("--cpus", type=int, help="Requested number of CPUs")
    parser.add_argument("--memory", help="Requested memory size, e.g. 4G")
    parser.add_argument("--disk", help="Requested disk size, e.g. 20G")
    parser.add_argument("--show-config", action="store_true", help="Show resolved configuration and exit")
    args = parser.parse_args(argv)

    try:
        cfg = parse_env()
    except CatalogError as exc:
        log("ERROR", str(exc))
        return 1

    if args.show_config:
        show_config(cfg)
        return 0

    if args.find is None and not args.blueprint:
        parser.print_help()
        return 0

    try:
        vm_desc = _vm_description(args)
    except ValueError as exc:
        log("ERROR", str(exc))
        return 1

    try:
        image_host, blueprints = build_catalog(cfg)
        if args.blueprint:
            resolve_blueprint(image_host, blueprints, args.blueprint, vm_desc)
        else:
            allow_unsupported = args.unsupported or get_env_bool("ALLOW_UNSUPPORTED", False)
            find(image_host, blueprints, args.find, allow_unsupported=allow_unsupported)
        return 0
    except CatalogError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
