from __future__ import annotations

# Sub-prefix under which the backup application stores one folder per backup.
BACKUP_OBJECTS_PREFIX = "backups"


def compose_full_prefix(base_prefix: str, sub_prefix: str) -> str:
    """
    Build the listing prefix for `sub_prefix` under a location's base prefix.

    The result always ends with a single "/" so that listing "backup-1"
    can never pick up the neighbouring "backup-10":

        compose_full_prefix("", "backups")          -> "backups/"
        compose_full_prefix("/velero/", "backups/") -> "velero/backups/"
    """
    if not base_prefix:
        return sub_prefix + "/"
    return base_prefix.strip("/") + "/" + sub_prefix.strip("/") + "/"


__all__ = ["BACKUP_OBJECTS_PREFIX", "compose_full_prefix"]
