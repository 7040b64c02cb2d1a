from __future__ import annotations

from typing import Any, Dict

from google.api_core import exceptions as gapi_exceptions
from google.auth import exceptions as gauth_exceptions
from google.cloud import storage
from loguru import logger

from common.exceptions import AuthenticationError, StorageVerifierError, TransportError

from .storage import ObjectStorageAdapter, StorageTarget, iter_matching

_AUTH_ERRORS = (
    gauth_exceptions.GoogleAuthError,
    gapi_exceptions.Unauthenticated,
    gapi_exceptions.Forbidden,
)


def _storage_client(target: StorageTarget) -> storage.Client:
    """
    Build a GCS client from the service-account JSON file at
    `target.credentials_file`, or from application default credentials when
    no file is given.
    """
    if not target.credentials_file:
        return storage.Client()
    try:
        return storage.Client.from_service_account_json(target.credentials_file)
    except (OSError, ValueError) as exc:
        raise AuthenticationError(
            f"Fail to create gcloud client: {exc}",
            {"credentials_file": target.credentials_file},
        ) from exc


def _translate_error(exc: Exception, message: str, context: Dict[str, Any]) -> StorageVerifierError:
    if isinstance(exc, _AUTH_ERRORS):
        return AuthenticationError(f"{message}: {exc}", context)
    return TransportError(f"{message}: {exc}", context)


class GCSStorageAdapter(ObjectStorageAdapter):
    """
    Google Cloud Storage backend.

    GCS listings are flat: folder placeholders created by some tools come
    back as an object named exactly like the prefix, which is ignored.
    """

    name = "gcp"

    def is_object_in_bucket(self, target: StorageTarget, object_key: str) -> bool:
        context = self._context(target, object_key)
        try:
            client = _storage_client(target)
            blobs = client.list_blobs(target.bucket, prefix=target.prefix or None)
            for name in iter_matching((blob.name for blob in blobs), target.prefix, object_key):
                logger.info("Found object {} of backup {} in bucket {}", name, object_key, target.bucket)
                return True
        except (gauth_exceptions.GoogleAuthError, gapi_exceptions.GoogleAPIError) as exc:
            raise _translate_error(exc, "Failed to list GCS objects", context) from exc
        except StorageVerifierError as exc:
            exc.details.update(context)
            raise

        logger.info("Backup {} was not found under prefix {}", object_key, target.prefix)
        return False

    def delete_objects_in_bucket(self, target: StorageTarget, object_key: str) -> None:
        context = self._context(target, object_key)
        try:
            client = _storage_client(target)
            bucket = client.bucket(target.bucket)
            blobs = client.list_blobs(target.bucket, prefix=target.prefix or None)
            names = list(iter_matching((blob.name for blob in blobs), target.prefix, object_key))
        except (gauth_exceptions.GoogleAuthError, gapi_exceptions.GoogleAPIError) as exc:
            raise _translate_error(exc, "Failed to list GCS objects for deletion", context) from exc
        except StorageVerifierError as exc:
            exc.details.update(context)
            raise

        for name in names:
            try:
                bucket.blob(name).delete()
            except (gauth_exceptions.GoogleAuthError, gapi_exceptions.GoogleAPIError) as exc:
                raise _translate_error(
                    exc, f"Fail to delete object {name} in bucket {target.bucket}", context
                ) from exc
            logger.info("Deleted {}", name)

        logger.info("Deleted {} object(s) from bucket {} under {}", len(names), target.bucket, target.prefix)


__all__ = ["GCSStorageAdapter"]
