"""
Azure Blob Storage backend.

Authentication uses a storage account shared key. The account name comes
from the backup-location config (`storageAccount`); the key is resolved
from the credentials file, which is a dotenv-style file:

- AZURE_STORAGE_ACCOUNT_ACCESS_KEY set -> used directly.
- Otherwise the key is looked up through Azure Resource Manager
  (`listKeys` on the storage account) with a service principal taken
  from AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET, in the
  cloud named by AZURE_CLOUD_NAME. The resource group comes from
  AZURE_RESOURCE_GROUP (or config `resourceGroup`) and the subscription
  from config `subscriptionId` (or AZURE_SUBSCRIPTION_ID).

Values in the credentials file take precedence over the process
environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import requests
from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.storage.blob import ContainerClient
from loguru import logger

from common.exceptions import AuthenticationError, StorageVerifierError, TransportError
from env_loader import read_env_file

from .storage import ObjectStorageAdapter, StorageTarget, iter_matching

SUBSCRIPTION_ID_ENV = "AZURE_SUBSCRIPTION_ID"
CLOUD_NAME_ENV = "AZURE_CLOUD_NAME"
RESOURCE_GROUP_ENV = "AZURE_RESOURCE_GROUP"
STORAGE_ACCOUNT_KEY_ENV = "AZURE_STORAGE_ACCOUNT_ACCESS_KEY"
TENANT_ID_ENV = "AZURE_TENANT_ID"
CLIENT_ID_ENV = "AZURE_CLIENT_ID"
CLIENT_SECRET_ENV = "AZURE_CLIENT_SECRET"

STORAGE_ACCOUNT_CONFIG = "storageAccount"
SUBSCRIPTION_ID_CONFIG = "subscriptionId"
RESOURCE_GROUP_CONFIG = "resourceGroup"

STORAGE_API_VERSION = "2019-06-01"
HTTP_TIMEOUT = 30


@dataclass(frozen=True)
class AzureCloud:
    name: str
    resource_manager: str
    active_directory: str
    storage_suffix: str


AZURE_CLOUDS: Dict[str, AzureCloud] = {
    cloud.name.upper(): cloud
    for cloud in (
        AzureCloud(
            "AzurePublicCloud",
            "https://management.azure.com/",
            "https://login.microsoftonline.com/",
            "core.windows.net",
        ),
        AzureCloud(
            "AzureUSGovernmentCloud",
            "https://management.usgovcloudapi.net/",
            "https://login.microsoftonline.us/",
            "core.usgovcloudapi.net",
        ),
        AzureCloud(
            "AzureChinaCloud",
            "https://management.chinacloudapi.cn/",
            "https://login.chinacloudapi.cn/",
            "core.chinacloudapi.cn",
        ),
    )
}
PUBLIC_CLOUD = AZURE_CLOUDS["AZUREPUBLICCLOUD"]


def parse_azure_cloud(cloud_name: str) -> AzureCloud:
    if not cloud_name:
        return PUBLIC_CLOUD
    try:
        return AZURE_CLOUDS[cloud_name.upper()]
    except KeyError:
        raise AuthenticationError(
            f"Unknown Azure cloud name {cloud_name!r}",
            {"supported": sorted(cloud.name for cloud in AZURE_CLOUDS.values())},
        ) from None


def _load_credentials(credentials_file: str) -> Dict[str, str]:
    if not credentials_file:
        return {}
    try:
        return read_env_file(credentials_file)
    except (OSError, ValueError) as exc:
        raise AuthenticationError(
            f"Error loading environment from credentials file: {exc}",
            {"credentials_file": credentials_file},
        ) from exc


def _lookup(values: Mapping[str, str], name: str) -> str:
    return values.get(name) or os.environ.get(name, "")


def _raise_for_status(resp: requests.Response, message: str, context: Dict[str, Any]) -> None:
    if resp.status_code in (401, 403):
        raise AuthenticationError(f"{message}: HTTP {resp.status_code}", {**context, "body": resp.text[:500]})
    if resp.status_code >= 400:
        raise TransportError(f"{message}: HTTP {resp.status_code}", {**context, "body": resp.text[:500]})


def _json_body(resp: requests.Response, what: str, context: Dict[str, Any]) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as exc:
        raise TransportError(f"{what} is not valid JSON: {exc}", {**context, "body": resp.text[:500]}) from exc
    if not isinstance(body, dict):
        raise TransportError(f"{what} is not a JSON object", {**context, "body": resp.text[:500]})
    return body


def _get_management_token(cloud: AzureCloud, values: Mapping[str, str]) -> str:
    tenant_id = _lookup(values, TENANT_ID_ENV)
    client_id = _lookup(values, CLIENT_ID_ENV)
    client_secret = _lookup(values, CLIENT_SECRET_ENV)
    missing = [
        name
        for name, value in (
            (TENANT_ID_ENV, tenant_id),
            (CLIENT_ID_ENV, client_id),
            (CLIENT_SECRET_ENV, client_secret),
        )
        if not value
    ]
    if missing:
        raise AuthenticationError(
            "error getting authorizer from environment", {"missing": missing}
        )

    context = {"cloud": cloud.name, "tenant_id": tenant_id}
    try:
        resp = requests.post(
            f"{cloud.active_directory}{tenant_id}/oauth2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": client_id,
                "client_secret": client_secret,
                "resource": cloud.resource_manager,
            },
            timeout=HTTP_TIMEOUT,
        )
    except requests.exceptions.RequestException as exc:
        raise TransportError(f"Token request failed: {exc}", context) from exc
    _raise_for_status(resp, "Token request rejected", context)

    token = _json_body(resp, "Token response", context).get("access_token")
    if not token:
        raise AuthenticationError("Token response did not contain an access_token", context)
    return token


def get_storage_account_key(
    values: Mapping[str, str],
    account_name: str,
    subscription_id: str,
    resource_group_cfg: str,
) -> str:
    """
    Resolve the shared key of `account_name`.

    `values` holds the parsed credentials file; names missing from it are
    looked up in the process environment.
    """
    storage_key = _lookup(values, STORAGE_ACCOUNT_KEY_ENV)
    if storage_key:
        return storage_key

    cloud_name = _lookup(values, CLOUD_NAME_ENV)
    if not cloud_name:
        raise AuthenticationError(f"Credential file should contain {CLOUD_NAME_ENV}")

    resource_group = _lookup(values, RESOURCE_GROUP_ENV) or resource_group_cfg
    if not resource_group:
        raise AuthenticationError(
            f"Credential file should contain {RESOURCE_GROUP_ENV} or {STORAGE_ACCOUNT_KEY_ENV}"
        )

    cloud = parse_azure_cloud(cloud_name)
    subscription_id = subscription_id or _lookup(values, SUBSCRIPTION_ID_ENV)
    if not subscription_id:
        raise AuthenticationError(
            "azure subscription ID not found in object store's config or in environment variable"
        )

    token = _get_management_token(cloud, values)
    url = (
        f"{cloud.resource_manager}subscriptions/{subscription_id}"
        f"/resourceGroups/{resource_group}"
        f"/providers/Microsoft.Storage/storageAccounts/{account_name}/listKeys"
    )
    context = {"storage_account": account_name, "resource_group": resource_group}
    try:
        resp = requests.post(
            url,
            params={"api-version": STORAGE_API_VERSION, "$expand": "kerb"},
            headers={"Authorization": f"Bearer {token}"},
            timeout=HTTP_TIMEOUT,
        )
    except requests.exceptions.RequestException as exc:
        raise TransportError(f"listKeys request failed: {exc}", context) from exc
    _raise_for_status(resp, "listKeys request rejected", context)

    keys = _json_body(resp, "listKeys response", context).get("keys") or []
    if not keys:
        raise AuthenticationError("No storage keys found", context)
    for key in keys:
        # ListKeys reports e.g. "FULL" while docs spell it "Full".
        if str(key.get("permissions", "")).lower() == "full" and key.get("value"):
            return key["value"]
    raise AuthenticationError("No storage key with Full permissions found", context)


def resolve_storage_credential(
    credentials_file: str,
    config: Mapping[str, str],
) -> Tuple[str, str, AzureCloud]:
    """Return (account_name, account_key, cloud) for a backup location."""
    account_name = config.get(STORAGE_ACCOUNT_CONFIG, "")
    if not account_name:
        raise AuthenticationError(
            f"Please provide {STORAGE_ACCOUNT_CONFIG} in the backup location config as the Azure account name"
        )
    try:
        values = _load_credentials(credentials_file)
        account_key = get_storage_account_key(
            values,
            account_name,
            config.get(SUBSCRIPTION_ID_CONFIG, ""),
            config.get(RESOURCE_GROUP_CONFIG, ""),
        )
    except StorageVerifierError as exc:
        exc.details.setdefault("storage_account", account_name)
        raise
    return account_name, account_key, parse_azure_cloud(_lookup(values, CLOUD_NAME_ENV))


def _container_client(target: StorageTarget) -> ContainerClient:
    account_name, account_key, cloud = resolve_storage_credential(
        target.credentials_file, target.config
    )
    return ContainerClient(
        account_url=f"https://{account_name}.blob.{cloud.storage_suffix}",
        container_name=target.bucket,
        credential={"account_name": account_name, "account_key": account_key},
    )


def _translate_error(exc: AzureError, message: str, context: Dict[str, Any]) -> StorageVerifierError:
    if isinstance(exc, ClientAuthenticationError):
        return AuthenticationError(f"{message}: {exc}", context)
    return TransportError(f"{message}: {exc}", context)


class AzureStorageAdapter(ObjectStorageAdapter):
    """Blob container backend; `target.bucket` is the container name."""

    name = "azure"

    def _blob_names(self, container: ContainerClient, prefix: str):
        return (blob.name for blob in container.list_blobs(name_starts_with=prefix or None))

    def is_object_in_bucket(self, target: StorageTarget, object_key: str) -> bool:
        context = self._context(target, object_key)
        logger.debug("Finding backup {} blobs in Azure container {}", object_key, target.bucket)
        try:
            container = _container_client(target)
            for name in iter_matching(self._blob_names(container, target.prefix), target.prefix, object_key):
                logger.info("Blob {} of backup {} exists in container {}", name, object_key, target.bucket)
                return True
        except AzureError as exc:
            raise _translate_error(exc, "Failed to list blobs", context) from exc
        except StorageVerifierError as exc:
            exc.details.update(context)
            raise

        logger.info("Backup {} was not found under prefix {}", object_key, target.prefix)
        return False

    def delete_objects_in_bucket(self, target: StorageTarget, object_key: str) -> None:
        context = self._context(target, object_key)
        deleted = 0
        try:
            container = _container_client(target)
            # Materialise the listing before deleting so paging is not disturbed.
            names = list(iter_matching(self._blob_names(container, target.prefix), target.prefix, object_key))
        except AzureError as exc:
            raise _translate_error(exc, "Failed to list blobs for deletion", context) from exc
        except StorageVerifierError as exc:
            exc.details.update(context)
            raise

        for name in names:
            try:
                container.delete_blob(name)
            except AzureError as exc:
                raise _translate_error(exc, "Failed to delete blob", {**context, "blob": name}) from exc
            deleted += 1
            logger.info("Deleted blob {} of backup {}", name, object_key)

        logger.info("Deleted {} blob(s) from container {} under {}", deleted, target.bucket, target.prefix)


__all__ = [
    "AzureStorageAdapter",
    "AzureCloud",
    "AZURE_CLOUDS",
    "parse_azure_cloud",
    "get_storage_account_key",
    "resolve_storage_credential",
]
