"""
Verification package
--------------------

Checks, from outside the backup application, whether the artefacts of a
backup are present in (or gone from) its object-storage location.

    from adapters import StorageTarget
    from verification import objects_should_be_in_bucket

    objects_should_be_in_bucket(StorageTarget("gcp", "my-bucket", "velero"), "backup-1")
"""

from .objects import (  # noqa: F401
    delete_objects_in_bucket,
    is_object_in_bucket,
    objects_should_be_in_bucket,
    objects_should_not_be_in_bucket,
)
from .prefix import BACKUP_OBJECTS_PREFIX, compose_full_prefix  # noqa: F401
from .providers import SUPPORTED_PROVIDERS, select_provider  # noqa: F401

__all__ = [
    "BACKUP_OBJECTS_PREFIX",
    "compose_full_prefix",
    "SUPPORTED_PROVIDERS",
    "select_provider",
    "is_object_in_bucket",
    "objects_should_be_in_bucket",
    "objects_should_not_be_in_bucket",
    "delete_objects_in_bucket",
]
