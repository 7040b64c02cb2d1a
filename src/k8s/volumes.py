from __future__ import annotations

from typing import List, Optional

from loguru import logger

from common.exceptions import VolumeLookupError
from common.exec import OsCommandLine, run_pipeline

KUBECTL = "kubectl"


def _first_column(filter_text: str) -> List[OsCommandLine]:
    return [
        # grep exits 1 when nothing matched, which is an empty result, not a failure.
        OsCommandLine("grep", [filter_text], ok_returncodes=(0, 1)),
        OsCommandLine("awk", ["{print $1}"]),
    ]


def get_pvc_by_pod_name(namespace: str, pod_name: str, *, timeout: Optional[float] = None) -> List[str]:
    """
    Names of the PVCs in `namespace` whose listing line mentions `pod_name`.

    Example `kubectl get pvc -n NS` output:
        NAME                                  STATUS   VOLUME                                     ...
        kibishii-data-kibishii-deployment-0   Bound    pvc-94b9fdf2-c30f-4a7b-87bf-06eadca0d5b6   ...
    """
    stages = [OsCommandLine(KUBECTL, ["get", "pvc", "-n", namespace]), *_first_column(pod_name)]
    return run_pipeline(stages, timeout=timeout)


def get_pv_by_pvc(namespace: str, pvc: str, *, timeout: Optional[float] = None) -> List[str]:
    """
    Names of the PVs whose CLAIM column is `namespace/pvc`.

    Example `kubectl get pv` output:
        NAME                                       CAPACITY   ...   CLAIM                                  ...
        pvc-3f784366-58db-40b2-8fec-77307807e74b   1Gi        ...   bsl-deletion/kibishii-data-kibishii-0  ...
    """
    stages = [OsCommandLine(KUBECTL, ["get", "pv"]), *_first_column(f"{namespace}/{pvc}")]
    return run_pipeline(stages, timeout=timeout)


def get_pv_by_pod_name(namespace: str, pod_name: str, *, timeout: Optional[float] = None) -> str:
    """Resolve the single PV backing `pod_name`; anything but one PVC and one PV is an error."""
    pvc_list = get_pvc_by_pod_name(namespace, pod_name, timeout=timeout)
    if len(pvc_list) != 1:
        raise VolumeLookupError(
            f"Only 1 PVC of pod {pod_name} should be found under namespace {namespace}",
            {"found": pvc_list},
        )

    pv_list = get_pv_by_pvc(namespace, pvc_list[0], timeout=timeout)
    if len(pv_list) != 1:
        raise VolumeLookupError(
            f"Only 1 PV of PVC {pvc_list[0]} pod {pod_name} should be found under namespace {namespace}",
            {"found": pv_list},
        )

    logger.info("Pod {}/{} uses PV {}", namespace, pod_name, pv_list[0])
    return pv_list[0]


__all__ = ["get_pvc_by_pod_name", "get_pv_by_pvc", "get_pv_by_pod_name"]
