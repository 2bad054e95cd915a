"""Custom exceptions for vm-catalog."""


class CatalogError(RuntimeError):
    """Base class for every error raised by the catalog core."""


class ConfigError(CatalogError):
    """Raised on invalid configuration."""


class NotFoundError(CatalogError, LookupError):
    """Raised when a name, alias or hash is not known to any catalog."""


class InvalidBlueprintError(CatalogError):
    """Raised when a Blueprint document exists but fails validation."""


class IncompatibleBlueprintError(CatalogError):
    """Raised when a Blueprint does not run on the current architecture."""


class BlueprintMinimumError(CatalogError):
    """Raised when a user supplied value is below a Blueprint minimum."""

    def __init__(self, field: str, value: str, minimum: str) -> None:
        super().__init__(f"{field} value too small: got {value}, the Blueprint requires at least {minimum}")
        self.field = field
        self.value = value
        self.minimum = minimum


class AmbiguousImageError(CatalogError):
    """Raised when a partial hash matches more than one image."""


class UnsupportedImageError(CatalogError):
    """Raised when an image is marked unsupported and unsupported images are not allowed."""

    def __init__(self, release: str) -> None:
        super().__init__(f"The {release} release is no longer supported.")
        self.release = release


class UnsupportedRemoteError(CatalogError):
    """Raised when a remote is not configured on this host."""

    def __init__(self, remote_name: str) -> None:
        super().__init__(f'Remote "{remote_name}" is not supported.')
        self.remote_name = remote_name


class FetchError(CatalogError):
    """Catalog-wide failure to obtain usable catalog data."""


class DownloadError(FetchError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"failed to download from '{url}': {reason}")
        self.url = url
        self.reason = reason


class RemoteUnreachableError(FetchError):
    def __init__(self, remote_name: str) -> None:
        super().__init__(f'Remote "{remote_name}" is unknown or unreachable.')
        self.remote_name = remote_name


class ManifestError(FetchError):
    """Raised when an index or manifest document cannot be parsed."""


class EmptyManifestError(ManifestError):
    """Raised when a manifest contains no usable products."""


class BlueprintArchiveError(FetchError):
    """Raised when the Blueprint bundle cannot be opened."""
