"""
Backup artefact checks against the backup location's object store.

Intended usage from a test scenario:

    target = StorageTarget(provider="aws", bucket="velero-e2e", prefix="nightly",
                           credentials_file="/creds/aws", region="us-east-1")

    objects_should_not_be_in_bucket(target, backup_name, RetryPolicy(max_attempts=1))
    # ... run the backup ...
    objects_should_be_in_bucket(target, backup_name)
    # ... delete the backup through the backup application ...
    objects_should_not_be_in_bucket(target, backup_name, RetryPolicy(interval=60, max_attempts=5))

Every call builds its adapter and client from scratch; nothing is cached
between calls.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from loguru import logger

from adapters import StorageTarget
from common.exceptions import StorageVerifierError, VerificationError
from common.retry import RetryPolicy, poll_until

from .prefix import BACKUP_OBJECTS_PREFIX, compose_full_prefix
from .providers import select_provider


def _wrap(exc: StorageVerifierError, message: str, context: Dict[str, Any]) -> StorageVerifierError:
    """Same error type, with `message` prepended and `context` merged in."""
    return type(exc)(f"{message}: {exc.message}", {**context, **exc.details})


def is_object_in_bucket(
    target: StorageTarget,
    object_key: str,
    *,
    sub_prefix: str = BACKUP_OBJECTS_PREFIX,
) -> bool:
    """Return whether `object_key` has objects under `target.prefix` + `sub_prefix`."""
    full_prefix = compose_full_prefix(target.prefix, sub_prefix)
    adapter = select_provider(target.provider)
    return adapter.is_object_in_bucket(target.with_prefix(full_prefix), object_key)


def objects_should_be_in_bucket(
    target: StorageTarget,
    object_key: str,
    *,
    sub_prefix: str = BACKUP_OBJECTS_PREFIX,
) -> None:
    """
    Raise VerificationError unless `object_key` is present right now.

    There is no retry here: by the time this runs the backup is expected to
    have completed. Authentication/transport failures propagate with the
    object key and bucket attached.
    """
    context = {"object_key": object_key, "bucket": target.bucket, "provider": target.provider}
    try:
        exists = is_object_in_bucket(target, object_key, sub_prefix=sub_prefix)
    except StorageVerifierError as exc:
        raise _wrap(exc, f"Failed to get backup {object_key} in object store", context) from exc

    if not exists:
        raise VerificationError(
            f"|| UNEXPECTED || Backup object {object_key} does not exist in object store after backup as expected",
            context,
        )
    logger.info("|| EXPECTED || - Backup {} exists in object storage bucket {}", object_key, target.bucket)


def objects_should_not_be_in_bucket(
    target: StorageTarget,
    object_key: str,
    policy: Optional[RetryPolicy] = None,
    *,
    sub_prefix: str = BACKUP_OBJECTS_PREFIX,
    sleep: Optional[Callable[[float], None]] = None,
) -> None:
    """
    Wait until `object_key` is gone, polling at most `policy.max_attempts` times.

    Deletion in the object store happens asynchronously after the backup
    is deleted, hence the polling. A listing failure stops the loop on the
    attempt it happens: retrying past an authentication error cannot
    converge. Exhausting the budget raises VerificationError.
    """
    policy = policy or RetryPolicy()
    context = {"object_key": object_key, "bucket": target.bucket, "provider": target.provider}

    adapter = select_provider(target.provider)
    listed = target.with_prefix(compose_full_prefix(target.prefix, sub_prefix))

    def is_absent() -> bool:
        return not adapter.is_object_in_bucket(listed, object_key)

    try:
        absent = poll_until(
            is_absent,
            policy,
            sleep=sleep,
            description=f"Absence of backup {object_key}",
        )
    except StorageVerifierError as exc:
        raise _wrap(exc, f"|| UNEXPECTED || - Failed to get backup {object_key} in object store", context) from exc

    if not absent:
        raise VerificationError(
            f"|| UNEXPECTED || Backup object {object_key} still exists in object store "
            f"after {policy.max_attempts} attempt(s)",
            {**context, "interval": policy.interval, "max_attempts": policy.max_attempts},
        )
    logger.info("|| EXPECTED || - Backup {} is not in object store", object_key)


def delete_objects_in_bucket(
    target: StorageTarget,
    object_key: str,
    *,
    sub_prefix: str = BACKUP_OBJECTS_PREFIX,
) -> None:
    """Remove every object of `object_key` directly from the object store."""
    full_prefix = compose_full_prefix(target.prefix, sub_prefix)
    adapter = select_provider(target.provider)
    try:
        adapter.delete_objects_in_bucket(target.with_prefix(full_prefix), object_key)
    except StorageVerifierError as exc:
        raise _wrap(exc, f"Fail to delete {full_prefix}", {"object_key": object_key}) from exc


__all__ = [
    "is_object_in_bucket",
    "objects_should_be_in_bucket",
    "objects_should_not_be_in_bucket",
    "delete_objects_in_bucket",
]
