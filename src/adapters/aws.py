from __future__ import annotations

from typing import Any, Dict, Iterable, List

import boto3
import botocore.session
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)
from loguru import logger

from common.exceptions import AuthenticationError, StorageVerifierError, TransportError

from .storage import ObjectStorageAdapter, StorageTarget, iter_matching

# delete_objects accepts at most 1000 keys per request.
DELETE_BATCH_SIZE = 1000

AUTH_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AuthFailure",
        "ExpiredToken",
        "InvalidAccessKeyId",
        "InvalidToken",
        "SignatureDoesNotMatch",
    }
)


def _translate_error(exc: Exception, message: str, context: Dict[str, Any]) -> StorageVerifierError:
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError, ProfileNotFound)):
        return AuthenticationError(f"{message}: {exc}", context)
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code in AUTH_ERROR_CODES:
            return AuthenticationError(f"{message}: {exc}", {**context, "error_code": code})
        return TransportError(f"{message}: {exc}", {**context, "error_code": code})
    return TransportError(f"{message}: {exc}", context)


def _s3_client(target: StorageTarget):
    """
    Build a fresh S3 client for `target`.

    Credentials come from the shared credentials file at
    `target.credentials_file` (profile `config["profile"]`, else "default").
    `config["s3Url"]` points the client at an S3-compatible endpoint and
    `config["s3ForcePathStyle"] == "true"` switches to path-style addressing.
    """
    config = target.config
    botocore_session = botocore.session.Session()
    if target.credentials_file:
        botocore_session.set_config_variable("credentials_file", target.credentials_file)

    session = boto3.session.Session(
        botocore_session=botocore_session,
        profile_name=config.get("profile") or None,
        region_name=target.region or config.get("region") or None,
    )

    client_config = None
    if str(config.get("s3ForcePathStyle", "")).lower() == "true":
        client_config = Config(s3={"addressing_style": "path"})

    return session.client(
        "s3",
        endpoint_url=config.get("s3Url") or None,
        config=client_config,
    )


def _listed_names(page: Dict[str, Any]) -> List[str]:
    names = [item["Prefix"] for item in page.get("CommonPrefixes") or []]
    names.extend(item["Key"] for item in page.get("Contents") or [])
    return names


def _batches(keys: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(keys), size):
        yield keys[start : start + size]


class AWSStorageAdapter(ObjectStorageAdapter):
    """
    S3 (and S3-compatible) backend.

    Existence checks list one level under the prefix (delimiter "/") so that
    backup folders show up as common prefixes; deletion lists flat so that
    every object inside the folder is removed.
    """

    name = "aws"

    def is_object_in_bucket(self, target: StorageTarget, object_key: str) -> bool:
        context = self._context(target, object_key)
        list_args: Dict[str, Any] = {"Bucket": target.bucket, "Delimiter": "/"}
        if target.prefix:
            list_args["Prefix"] = target.prefix

        logger.debug("Listing s3://{}/{}", target.bucket, target.prefix)
        try:
            paginator = _s3_client(target).get_paginator("list_objects_v2")
            for page in paginator.paginate(**list_args):
                for name in iter_matching(_listed_names(page), target.prefix, object_key):
                    logger.info("Backup {} was found under prefix {} as {}", object_key, target.prefix, name)
                    return True
        except (BotoCoreError, ClientError) as exc:
            raise _translate_error(exc, "Failed to list S3 objects", context) from exc

        logger.info("Backup {} was not found under prefix {}", object_key, target.prefix)
        return False

    def delete_objects_in_bucket(self, target: StorageTarget, object_key: str) -> None:
        context = self._context(target, object_key)
        try:
            client = _s3_client(target)
            paginator = client.get_paginator("list_objects_v2")
            keys: List[str] = []
            for page in paginator.paginate(Bucket=target.bucket, Prefix=target.prefix):
                contents = page.get("Contents") or []
                keys.extend(iter_matching((item["Key"] for item in contents), target.prefix, object_key))
        except (BotoCoreError, ClientError) as exc:
            raise _translate_error(exc, "Failed to list S3 objects for deletion", context) from exc

        for batch in _batches(keys, DELETE_BATCH_SIZE):
            try:
                resp = client.delete_objects(
                    Bucket=target.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except (BotoCoreError, ClientError) as exc:
                raise _translate_error(exc, "Failed to delete S3 objects", context) from exc

            failed = resp.get("Errors") or []
            if failed:
                first = failed[0]
                raise TransportError(
                    f"Failed to delete {len(failed)} S3 object(s)",
                    {
                        **context,
                        "key": first.get("Key"),
                        "error_code": first.get("Code"),
                        "error_message": first.get("Message"),
                    },
                )
            for key in batch:
                logger.info("Deleted object {} from bucket {}", key, target.bucket)

        logger.info("Deleted {} object(s) from bucket {} under {}", len(keys), target.bucket, target.prefix)


__all__ = ["AWSStorageAdapter", "DELETE_BATCH_SIZE"]
