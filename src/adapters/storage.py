from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, Mapping, Union


def parse_config_map(config: Union[str, Mapping[str, str], None]) -> Dict[str, str]:
    """
    Parse a backup-location config string such as
    "storageAccount=acct01,resourceGroup=rg-backups" into a dict.

    A mapping is copied as-is; None or an empty string yields {}.
    """
    if config is None:
        return {}
    if isinstance(config, Mapping):
        return dict(config)

    parsed: Dict[str, str] = {}
    for entry in config.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ValueError(f"Invalid config entry {entry!r}: expected key=value")
        key, value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid config entry {entry!r}: empty key")
        parsed[key] = value.strip()
    return parsed


@dataclass(frozen=True)
class StorageTarget:
    """
    Where a verification call looks: one bucket/container, one prefix,
    and the credentials needed to reach it.

    `config` carries provider-specific settings of the backup location,
    for example `storageAccount` (Azure) or `s3Url` (S3-compatible stores).
    """

    provider: str
    bucket: str
    prefix: str = ""
    credentials_file: str = ""
    region: str = ""
    config: Mapping[str, str] = field(default_factory=dict)

    def with_prefix(self, prefix: str) -> "StorageTarget":
        return replace(self, prefix=prefix)

    def describe(self) -> Dict[str, Any]:
        return {"provider": self.provider, "bucket": self.bucket, "prefix": self.prefix}


def object_folder(prefix: str, object_key: str) -> str:
    """Name fragment identifying an object stored as a folder under `prefix`."""
    return f"{prefix}{object_key}/"


def iter_matching(names: Iterable[str], prefix: str, object_key: str) -> Iterator[str]:
    """
    Yield listed names that belong to `object_key`.

    A name matches when it contains `prefix + object_key + "/"`. A name equal
    to the prefix itself (returned by some flat listings) is skipped.
    """
    needle = object_folder(prefix, object_key)
    for name in names:
        if name == prefix:
            continue
        if needle in name:
            yield name


class ObjectStorageAdapter(ABC):
    """
    Capability set every object-storage backend provides to the verifier.

    Implementations hold no client state: every call authenticates and builds
    its own client from the StorageTarget it receives, so one instance can be
    used from concurrent callers. `target.prefix` is expected to be the full
    listing prefix (see verification.prefix.compose_full_prefix).
    """

    name: str = ""

    @abstractmethod
    def is_object_in_bucket(self, target: StorageTarget, object_key: str) -> bool:
        """
        Return True when at least one entry under `target.prefix` belongs to
        `object_key`, False when the listing completes without a match.

        Raises AuthenticationError or TransportError; never returns False to
        hide a failed listing.
        """

    @abstractmethod
    def delete_objects_in_bucket(self, target: StorageTarget, object_key: str) -> None:
        """
        Delete every entry under `target.prefix` that belongs to `object_key`.

        Zero matches is a no-op. The first failed delete raises; objects
        already deleted stay deleted.
        """

    def _context(self, target: StorageTarget, object_key: str) -> Dict[str, Any]:
        return {**target.describe(), "object_key": object_key}


__all__ = [
    "StorageTarget",
    "ObjectStorageAdapter",
    "parse_config_map",
    "object_folder",
    "iter_matching",
]
