"""
Shared pytest fixtures.

Cloud SDK clients are never contacted: every adapter builds its client
through a module-level factory (_s3_client, _container_client,
_storage_client) that tests replace with the small fakes below.
"""

from __future__ import annotations

import types
from typing import Dict, List

import pytest

from adapters import StorageTarget

AZURE_ENV_VARS = (
    "AZURE_SUBSCRIPTION_ID",
    "AZURE_CLOUD_NAME",
    "AZURE_RESOURCE_GROUP",
    "AZURE_STORAGE_ACCOUNT_ACCESS_KEY",
    "AZURE_TENANT_ID",
    "AZURE_CLIENT_ID",
    "AZURE_CLIENT_SECRET",
)


class FakeS3Paginator:
    def __init__(self, client: "FakeS3Client") -> None:
        self.client = client

    def paginate(self, **kwargs):
        self.client.list_calls.append(kwargs)
        if self.client.list_error is not None:
            raise self.client.list_error
        prefix = kwargs.get("Prefix", "")
        delimiter = kwargs.get("Delimiter")
        contents: List[Dict[str, str]] = []
        common: List[str] = []
        for key in self.client.keys:
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter and delimiter in rest:
                folder = prefix + rest.split(delimiter, 1)[0] + delimiter
                if folder not in common:
                    common.append(folder)
            else:
                contents.append({"Key": key})
        # Two pages to exercise pagination.
        half = len(contents) // 2
        yield {"Contents": contents[:half]}
        yield {"Contents": contents[half:], "CommonPrefixes": [{"Prefix": p} for p in common]}


class FakeS3Client:
    def __init__(self, keys: List[str]) -> None:
        self.keys = list(keys)
        self.list_calls: List[dict] = []
        self.delete_calls: List[dict] = []
        self.list_error = None
        self.delete_errors: List[dict] = []

    def get_paginator(self, operation: str) -> FakeS3Paginator:
        assert operation == "list_objects_v2"
        return FakeS3Paginator(self)

    def delete_objects(self, Bucket, Delete):
        self.delete_calls.append({"Bucket": Bucket, "Delete": Delete})
        if self.delete_errors:
            return {"Errors": self.delete_errors}
        removed = {item["Key"] for item in Delete["Objects"]}
        self.keys = [key for key in self.keys if key not in removed]
        return {"Deleted": [{"Key": key} for key in removed]}


class FakeContainer:
    def __init__(self, names: List[str]) -> None:
        self.names = list(names)
        self.list_calls: List[str] = []
        self.deleted: List[str] = []
        self.list_error = None
        self.delete_error_for: Dict[str, Exception] = {}

    def list_blobs(self, name_starts_with=None):
        self.list_calls.append(name_starts_with)
        if self.list_error is not None:
            raise self.list_error
        for name in self.names:
            if name_starts_with is None or name.startswith(name_starts_with):
                yield types.SimpleNamespace(name=name)

    def delete_blob(self, name):
        if name in self.delete_error_for:
            raise self.delete_error_for[name]
        self.deleted.append(name)


class FakeGCSBlob:
    def __init__(self, bucket: "FakeGCSBucket", name: str) -> None:
        self.bucket = bucket
        self.name = name

    def delete(self):
        error = self.bucket.client.delete_error_for.get(self.name)
        if error is not None:
            raise error
        self.bucket.client.deleted.append(self.name)


class FakeGCSBucket:
    def __init__(self, client: "FakeGCSClient", name: str) -> None:
        self.client = client
        self.name = name

    def blob(self, name: str) -> FakeGCSBlob:
        return FakeGCSBlob(self, name)


class FakeGCSClient:
    def __init__(self, names: List[str]) -> None:
        self.names = list(names)
        self.list_calls: List[tuple] = []
        self.deleted: List[str] = []
        self.list_error = None
        self.delete_error_for: Dict[str, Exception] = {}

    def list_blobs(self, bucket_name, prefix=None):
        self.list_calls.append((bucket_name, prefix))
        if self.list_error is not None:
            raise self.list_error
        for name in self.names:
            if prefix is None or name.startswith(prefix):
                yield types.SimpleNamespace(name=name)

    def bucket(self, name: str) -> FakeGCSBucket:
        return FakeGCSBucket(self, name)


@pytest.fixture
def clean_azure_env(monkeypatch):
    for name in AZURE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def backup_keys():
    """Two neighbouring backups whose names share a prefix."""
    return [
        "velero/backups/backup-1/a.tar",
        "velero/backups/backup-1/backup-1-logs.gz",
        "velero/backups/backup-10/b.tar",
        "velero/restores/restore-1/c.tar",
    ]


def make_target(provider: str, prefix: str = "velero/backups/", **kwargs) -> StorageTarget:
    return StorageTarget(provider=provider, bucket="e2e-bucket", prefix=prefix, **kwargs)
