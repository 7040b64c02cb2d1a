"""
Adapters package
----------------

One object-storage adapter per cloud backend, all exposing the same two
operations (is_object_in_bucket / delete_objects_in_bucket) so that the
verifier can check backup artefacts the same way on AWS, Azure and GCP.
"""

from .storage import (  # noqa: F401
    ObjectStorageAdapter,
    StorageTarget,
    iter_matching,
    object_folder,
    parse_config_map,
)
from .aws import AWSStorageAdapter  # noqa: F401
from .azure import AzureStorageAdapter  # noqa: F401
from .gcp import GCSStorageAdapter  # noqa: F401

__all__ = [
    "ObjectStorageAdapter",
    "StorageTarget",
    "parse_config_map",
    "object_folder",
    "iter_matching",
    "AWSStorageAdapter",
    "AzureStorageAdapter",
    "GCSStorageAdapter",
]
