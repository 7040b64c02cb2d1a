from __future__ import annotations

from typing import Callable, Dict

from adapters import AWSStorageAdapter, AzureStorageAdapter, GCSStorageAdapter, ObjectStorageAdapter
from common.exceptions import UnknownProviderError

# vsphere backup locations store their objects in an S3-compatible bucket.
_PROVIDERS: Dict[str, Callable[[], ObjectStorageAdapter]] = {
    "aws": AWSStorageAdapter,
    "vsphere": AWSStorageAdapter,
    "gcp": GCSStorageAdapter,
    "azure": AzureStorageAdapter,
}

SUPPORTED_PROVIDERS = tuple(sorted(_PROVIDERS))


def select_provider(cloud_provider: str) -> ObjectStorageAdapter:
    """Return a fresh adapter for `cloud_provider`; unknown names are rejected."""
    try:
        factory = _PROVIDERS[cloud_provider]
    except KeyError:
        raise UnknownProviderError(
            f"Cloud provider {cloud_provider!r} is not valid",
            {"supported": list(SUPPORTED_PROVIDERS)},
        ) from None
    return factory()


__all__ = ["select_provider", "SUPPORTED_PROVIDERS"]
