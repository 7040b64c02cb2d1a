from .volumes import get_pv_by_pod_name, get_pv_by_pvc, get_pvc_by_pod_name  # noqa: F401

__all__ = ["get_pvc_by_pod_name", "get_pv_by_pvc", "get_pv_by_pod_name"]
