"""Interface shared by image catalog sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from vmcatalog.exceptions import UnsupportedRemoteError
from vmcatalog.models import ImageRecord, Query

Action = Callable[[str, ImageRecord], None]


class CatalogHost(ABC):
    """A catalog of images published by one or more remotes.

    Subclasses implement ``fetch_manifests``, ``clear`` and
    ``supported_remotes`` plus the query operations; TTL handling lives in the
    CatalogCache they fetch through, so ``update_manifests`` only has to ask
    for fresh manifests.
    """

    @abstractmethod
    def fetch_manifests(self) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def supported_remotes(self) -> List[str]:
        ...

    @abstractmethod
    def info_for(self, query: Query) -> Optional[ImageRecord]:
        ...

    @abstractmethod
    def all_info_for(self, query: Query) -> List[Tuple[str, ImageRecord]]:
        ...

    @abstractmethod
    def all_images_for(self, remote_name: str, allow_unsupported: bool) -> List[ImageRecord]:
        ...

    @abstractmethod
    def _info_for_full_hash_impl(self, full_hash: str) -> ImageRecord:
        ...

    @abstractmethod
    def _for_each_entry_do_impl(self, action: Action) -> None:
        ...

    def update_manifests(self) -> None:
        self.fetch_manifests()

    def check_remote_is_supported(self, remote_name: str) -> None:
        if remote_name not in self.supported_remotes():
            raise UnsupportedRemoteError(remote_name)

    def info_for_full_hash(self, full_hash: str) -> ImageRecord:
        self.update_manifests()
        return self._info_for_full_hash_impl(full_hash)

    def for_each_entry_do(self, action: Action) -> None:
        self.update_manifests()
        self._for_each_entry_do_impl(action)
