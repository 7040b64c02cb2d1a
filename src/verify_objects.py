"""
Command-line entrypoint for backup artefact checks.

Runs one verification against the backup location described by the
environment (or by flags, which take precedence):

- VERIFIER_CLOUD_PROVIDER
    aws, vsphere, azure or gcp.

- VERIFIER_BUCKET
    Bucket (or Azure container) of the backup location.

- VERIFIER_PREFIX (optional)
    Base prefix of the backup location inside the bucket.

- VERIFIER_CREDENTIALS_FILE (optional)
    AWS shared credentials file, Azure dotenv credentials file or GCP
    service-account JSON, depending on the provider.

- VERIFIER_REGION (optional)

- VERIFIER_BSL_CONFIG (optional)
    Backup-location config as "key1=value1,key2=value2", for example
    "storageAccount=acct01,resourceGroup=rg-backups".

Intended usage:

    PYTHONPATH=src python -m verify_objects exists backup-1
    PYTHONPATH=src python -m verify_objects absent backup-1 --max-attempts 5 --interval 60
    PYTHONPATH=src python -m verify_objects delete backup-1
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Mapping, Optional

from adapters import StorageTarget, parse_config_map
from common.exceptions import StorageVerifierError
from common.retry import RetryPolicy
from env_loader import load_dotenv_if_present
from logging_config import setup_logging
from verification import (
    BACKUP_OBJECTS_PREFIX,
    delete_objects_in_bucket,
    objects_should_be_in_bucket,
    objects_should_not_be_in_bucket,
)

CLOUD_PROVIDER_ENV = "VERIFIER_CLOUD_PROVIDER"
BUCKET_ENV = "VERIFIER_BUCKET"
PREFIX_ENV = "VERIFIER_PREFIX"
CREDENTIALS_FILE_ENV = "VERIFIER_CREDENTIALS_FILE"
REGION_ENV = "VERIFIER_REGION"
BSL_CONFIG_ENV = "VERIFIER_BSL_CONFIG"


def _require(environ: Mapping[str, str], name: str) -> str:
    value = environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable {name!r}.")
    return value


def build_target_from_env(environ: Optional[Mapping[str, str]] = None) -> StorageTarget:
    """Build the StorageTarget described by the VERIFIER_* variables."""
    environ = os.environ if environ is None else environ
    return StorageTarget(
        provider=_require(environ, CLOUD_PROVIDER_ENV),
        bucket=_require(environ, BUCKET_ENV),
        prefix=environ.get(PREFIX_ENV, ""),
        credentials_file=environ.get(CREDENTIALS_FILE_ENV, ""),
        region=environ.get(REGION_ENV, ""),
        config=parse_config_map(environ.get(BSL_CONFIG_ENV, "")),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Check backup artefacts in a backup location's object store.",
    )
    parser.add_argument("action", choices=("exists", "absent", "delete"))
    parser.add_argument("object_key", help="Backup name (folder) to look for.")
    parser.add_argument("--provider", help=f"Overrides {CLOUD_PROVIDER_ENV}.")
    parser.add_argument("--bucket", help=f"Overrides {BUCKET_ENV}.")
    parser.add_argument("--prefix", help=f"Overrides {PREFIX_ENV}.")
    parser.add_argument("--credentials-file", help=f"Overrides {CREDENTIALS_FILE_ENV}.")
    parser.add_argument("--region", help=f"Overrides {REGION_ENV}.")
    parser.add_argument("--config", help=f"Overrides {BSL_CONFIG_ENV}.")
    parser.add_argument(
        "--sub-prefix",
        default=BACKUP_OBJECTS_PREFIX,
        help="Sub-prefix holding backup folders (default: %(default)s).",
    )
    parser.add_argument("--interval", type=float, default=60.0, help="Seconds between polls for 'absent'.")
    parser.add_argument("--max-attempts", type=int, default=5, help="Poll budget for 'absent'.")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(level=args.log_level.upper(), json_format=args.json_logs)
    load_dotenv_if_present()

    overrides = {
        CLOUD_PROVIDER_ENV: args.provider,
        BUCKET_ENV: args.bucket,
        PREFIX_ENV: args.prefix,
        CREDENTIALS_FILE_ENV: args.credentials_file,
        REGION_ENV: args.region,
        BSL_CONFIG_ENV: args.config,
    }
    environ = dict(os.environ)
    environ.update({name: value for name, value in overrides.items() if value is not None})

    try:
        target = build_target_from_env(environ)
        if args.action == "exists":
            objects_should_be_in_bucket(target, args.object_key, sub_prefix=args.sub_prefix)
        elif args.action == "absent":
            policy = RetryPolicy(interval=args.interval, max_attempts=args.max_attempts)
            objects_should_not_be_in_bucket(target, args.object_key, policy, sub_prefix=args.sub_prefix)
        else:
            delete_objects_in_bucket(target, args.object_key, sub_prefix=args.sub_prefix)
    except (StorageVerifierError, RuntimeError, ValueError) as exc:
        print(f"[verify] {args.action} {args.object_key}: FAILED - {exc}", file=sys.stderr)
        return 1

    print(f"[verify] {args.action} {args.object_key}: OK")
    return 0


__all__ = ["build_target_from_env", "main"]


if __name__ == "__main__":
    sys.exit(main())
