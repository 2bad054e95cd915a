"""Image resolution against simplestreams remotes (release, daily, ...)."""

from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from vmcatalog.cache import CatalogCache
from vmcatalog.constants import DAILY_REMOTE, DEFAULT_ALIAS, INDEX_PATH, RELEASE_REMOTE
from vmcatalog.exceptions import (
    AmbiguousImageError,
    EmptyManifestError,
    FetchError,
    NotFoundError,
    RemoteUnreachableError,
    UnsupportedImageError,
    UnsupportedRemoteError,
)
from vmcatalog.host import Action, CatalogHost
from vmcatalog.models import ImageRecord, Query, RemoteDescriptor
from vmcatalog.simplestreams import Manifest, SimpleStreamsIndex
from vmcatalog.utils import host_arch, log, normalize_arch


def _key_from(release: str) -> str:
    return release or DEFAULT_ALIAS


def _on_manifest_update_failure(remote_name: str, exc: FetchError) -> None:
    if isinstance(exc, EmptyManifestError):
        log("WARN", f'Did not find any supported products in "{remote_name}"')
    else:
        log("ERROR", f'Failed to update manifest for remote "{remote_name}": {exc}')


class SimpleStreamsImageHost(CatalogHost):
    def __init__(
        self,
        remotes: Sequence[RemoteDescriptor],
        downloader,
        manifest_ttl: float,
        arch: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.remotes = list(remotes)
        self.downloader = downloader
        self.arch = normalize_arch(arch) if arch else host_arch()
        self._remote_urls: Dict[str, str] = {remote.name: remote.base_url for remote in self.remotes}
        self._manifests = CatalogCache(
            self._download_manifest,
            manifest_ttl,
            clock=clock,
            on_failure=_on_manifest_update_failure,
        )

    # -- CatalogHost interface -------------------------------------------

    def supported_remotes(self) -> List[str]:
        return [remote.name for remote in self.remotes]

    def fetch_manifests(self) -> None:
        for remote_name in self.supported_remotes():
            try:
                self._manifests.ensure_fresh(remote_name)
            except FetchError as exc:
                _on_manifest_update_failure(remote_name, exc)

    def clear(self) -> None:
        self._manifests.clear()

    # -- queries -----------------------------------------------------------

    def info_for(self, query: Query) -> Optional[ImageRecord]:
        match = self.info_with_remote_for(query)
        return match[1] if match else None

    def info_with_remote_for(self, query: Query) -> Optional[Tuple[str, ImageRecord]]:
        """Like ``info_for`` but also names the remote the record came from."""
        images = self.all_info_for(query)
        if not images:
            return None

        key = _key_from(query.release)
        first = images[0][1]
        if key != first.id and first.id.startswith(key):
            matching_ids = {record.id for _, record in images if record.id.startswith(key)}
            if len(matching_ids) > 1:
                raise AmbiguousImageError(f'Too many images matching "{query.release}"')

        # Not a partial hash: the first match wins, release before daily.
        return images[0]

    def all_info_for(self, query: Query) -> List[Tuple[str, ImageRecord]]:
        key = _key_from(query.release)
        if query.remote_name:
            remotes_to_search = [query.remote_name]
        else:
            remotes_to_search = [RELEASE_REMOTE, DAILY_REMOTE]

        images: List[Tuple[str, ImageRecord]] = []
        for remote_name in remotes_to_search:
            try:
                manifest = self._manifest_from(remote_name)
            except UnsupportedRemoteError:
                if not query.remote_name:
                    continue
                raise

            base_url = self._remote_urls[remote_name]
            info = manifest.image_records.get(key)
            if info is not None:
                if not info.supported and not query.allow_unsupported:
                    raise UnsupportedImageError(query.release)
                images.append((remote_name, info.with_location_resolved(base_url)))
                continue

            found_hashes = set()
            for entry in manifest.products:
                if not entry.id.startswith(key) or entry.id in found_hashes:
                    continue
                if entry.supported or query.allow_unsupported:
                    images.append((remote_name, entry.with_location_resolved(base_url)))
                    found_hashes.add(entry.id)
        return images

    def all_images_for(self, remote_name: str, allow_unsupported: bool) -> List[ImageRecord]:
        manifest = self._manifest_from(remote_name)
        base_url = self._remote_urls[remote_name]
        images = [
            entry.with_location_resolved(base_url)
            for entry in manifest.products
            if entry.aliases and (entry.supported or allow_unsupported)
        ]
        if not images:
            raise NotFoundError(f'Unable to find images for remote "{remote_name}"')
        return images

    def _info_for_full_hash_impl(self, full_hash: str) -> ImageRecord:
        for remote_name, manifest in self._cached_manifests():
            for product in manifest.products:
                if product.id == full_hash:
                    return product.with_location_resolved(self._remote_urls[remote_name])
        raise NotFoundError(f'Unable to find an image matching hash "{full_hash}"')

    def _for_each_entry_do_impl(self, action: Action) -> None:
        for remote_name, manifest in self._cached_manifests():
            base_url = self._remote_urls[remote_name]
            for product in manifest.products:
                if product.aliases:
                    action(remote_name, product.with_location_resolved(base_url))

    # -- helpers -----------------------------------------------------------

    def _cached_manifests(self) -> List[Tuple[str, Manifest]]:
        cached = self._manifests.entries()
        return [(name, cached[name].data) for name in self.supported_remotes() if name in cached]

    def _manifest_from(self, remote_name: str) -> Manifest:
        self.check_remote_is_supported(remote_name)
        try:
            return self._manifests.ensure_fresh(remote_name)
        except FetchError as exc:
            _on_manifest_update_failure(remote_name, exc)
            raise RemoteUnreachableError(remote_name) from exc

    def _download_manifest(self, remote_name: str) -> Manifest:
        base_url = self._remote_urls[remote_name]
        index = SimpleStreamsIndex.from_json(self.downloader.download(base_url + INDEX_PATH))
        manifest_url = base_url + index.manifest_path
        log("DEBUG", f'Fetching manifest for remote "{remote_name}" from {manifest_url}')
        return Manifest.from_json(self.downloader.download(manifest_url), self.arch, stream_location=manifest_url)
