from typing import Any

# ----------------------------
# Well-known names
# ----------------------------

CRDB_GROUP = "crdb.cockroachlabs.com"
CRDB_VERSION = "v1alpha1"
CRDB_API_VERSION = f"{CRDB_GROUP}/{CRDB_VERSION}"
CRDB_CLUSTER_PLURAL = "crdbclusters"

CRDB_CONTAINER_NAMES = ("db", "cockroachdb")
DATA_VOLUME_NAME = "datadir"
FAILOVER_VOLUME_NAME = "failoverdir"
LOG_CONFIG_VOLUME_NAME = "log-config"

SELECTED_NODE_ANNOTATION = "volume.kubernetes.io/selected-node"

# ----------------------------
# Parsing utilities
# ----------------------------


def get_name(obj: dict[str, Any]) -> str:
    return obj.get("metadata", {}).get("name", "<unknown>")


def pod_name(controller: str, index: int) -> str:
    return f"{controller}-{index}"


def pod_ordinal(pod: dict[str, Any]) -> int | None:
    name = get_name(pod)
    _, _, suffix = name.rpartition("-")
    if suffix.isdigit():
        return int(suffix)
    return None


def claim_name(template: str, controller: str, index: int) -> str:
    return f"{template}-{controller}-{index}"


def pod_host(pod: dict[str, Any]) -> str | None:
    return pod.get("spec", {}).get("nodeName") or None


def pod_template_spec(sts: dict[str, Any]) -> dict[str, Any]:
    return sts.get("spec", {}).get("template", {}).get("spec", {})


def pod_template_meta(sts: dict[str, Any]) -> dict[str, Any]:
    return sts.get("spec", {}).get("template", {}).get("metadata", {})


def claim_templates(sts: dict[str, Any]) -> list[dict[str, Any]]:
    return sts.get("spec", {}).get("volumeClaimTemplates", []) or []


def crdb_container(pod_spec: dict[str, Any]) -> dict[str, Any] | None:
    """
    Return the database container of a pod spec.

    Falls back to the first container when none carries a well-known name.
    """
    containers = pod_spec.get("containers", []) or []
    for c in containers:
        if c.get("name") in CRDB_CONTAINER_NAMES:
            return c
    return containers[0] if containers else None


def find_volume(pod_spec: dict[str, Any], name: str) -> dict[str, Any] | None:
    for v in pod_spec.get("volumes", []) or []:
        if v.get("name") == name:
            return v
    return None


def find_mount_by_path(container: dict[str, Any], path: str) -> dict[str, Any] | None:
    wanted = path.rstrip("/")
    for m in container.get("volumeMounts", []) or []:
        if (m.get("mountPath") or "").rstrip("/") == wanted:
            return m
    return None


def requested_storage(claim: dict[str, Any]) -> str | None:
    return (
        claim.get("spec", {})
        .get("resources", {})
        .get("requests", {})
        .get("storage")
    )


def env_list(container: dict[str, Any]) -> list[dict[str, Any]]:
    return list(container.get("env", []) or [])
