from typing import Any

from crdb_migrate.errors import ClaimNotFound, NodeMismatch
from crdb_migrate.model import (
    FAILOVER_VOLUME_NAME,
    SELECTED_NODE_ANNOTATION,
    claim_name,
    claim_templates,
    crdb_container,
    find_mount_by_path,
    find_volume,
    get_name,
    pod_host,
    pod_ordinal,
    requested_storage,
)
from crdb_migrate.observation import StorageDescriptor
from crdb_migrate.snapshot import ClusterSnapshot


def _template(snapshot: ClusterSnapshot, name: str) -> dict[str, Any] | None:
    for tmpl in claim_templates(snapshot.statefulset):
        if tmpl.get("metadata", {}).get("name") == name:
            return tmpl
    return None


def _mount_path(pod: dict[str, Any], volume_name: str) -> str | None:
    container = crdb_container(pod.get("spec", {})) or {}
    for m in container.get("volumeMounts", []) or []:
        if m.get("name") == volume_name:
            return m.get("mountPath")
    return None


def _check_pod_identity(
    pod: dict[str, Any], index: int, expected_host: str
) -> None:
    name = get_name(pod)
    if pod_ordinal(pod) != index:
        raise NodeMismatch(
            f"pod ordinal does not match node index {index}",
            kind="Pod",
            name=name,
            node_index=index,
        )
    host = pod_host(pod)
    if host != expected_host:
        raise NodeMismatch(
            f"pod is not on node {expected_host} (found {host})",
            kind="Pod",
            name=name,
            node_index=index,
        )


def resolve_claim(
    snapshot: ClusterSnapshot,
    index: int,
    template_name: str,
    expected_host: str | None = None,
) -> StorageDescriptor:
    """
    Correlate one claim template with the claim node `index` mounts.

    Three steps: pod volume named after the template -> the volume's claim
    reference -> the claim object. Each link is checked against the node's
    identity; a broken chain is fatal.
    """
    pod = snapshot.pod(index)
    host = expected_host if expected_host is not None else snapshot.hosts()[index]
    _check_pod_identity(pod, index, host)

    template = _template(snapshot, template_name)
    if template is None:
        raise ClaimNotFound(
            f"no {template_name} claim template on the controller",
            kind="StatefulSet",
            name=snapshot.name,
            node_index=index,
        )

    volume = find_volume(pod.get("spec", {}), template_name)
    ref = (volume or {}).get("persistentVolumeClaim") or {}
    mounted = ref.get("claimName")
    if not mounted:
        raise ClaimNotFound(
            f"pod mounts no {template_name} claim",
            kind="Pod",
            name=get_name(pod),
            node_index=index,
        )

    expected_claim = claim_name(template_name, snapshot.name, index)
    if mounted != expected_claim:
        raise NodeMismatch(
            f"pod mounts {mounted}, expected {expected_claim}",
            kind="PersistentVolumeClaim",
            name=mounted,
            node_index=index,
        )

    claim = snapshot.claims.get(mounted)
    if claim is None:
        raise ClaimNotFound(
            f"no {template_name} PVC found",
            kind="PersistentVolumeClaim",
            name=mounted,
            node_index=index,
        )

    selected = claim.get("metadata", {}).get("annotations", {}).get(SELECTED_NODE_ANNOTATION)
    if selected and selected != host:
        raise NodeMismatch(
            f"claim is bound to node {selected}, pod runs on {host}",
            kind="PersistentVolumeClaim",
            name=mounted,
            node_index=index,
        )

    spec = claim.get("spec", {})
    return StorageDescriptor(
        name=template_name,
        claim_name=mounted,
        size=requested_storage(claim) or requested_storage(template),
        storage_class=spec.get("storageClassName")
        or template.get("spec", {}).get("storageClassName"),
        mount_path=_mount_path(pod, template_name),
        node_index=index,
        host=host,
    )


def resolve_node_storage(
    snapshot: ClusterSnapshot, index: int
) -> dict[str, StorageDescriptor]:
    """
    Resolve every claim template on the controller for one node.
    """
    resolved = {}
    for tmpl in claim_templates(snapshot.statefulset):
        name = tmpl.get("metadata", {}).get("name")
        if name:
            resolved[name] = resolve_claim(snapshot, index, name)
    return resolved


def failover_volume_name(snapshot: ClusterSnapshot, index: int, path: str) -> str:
    """
    Name of the volume backing the failover path on node `index`.

    Absolute paths are matched against the database container's mounts;
    otherwise the well-known failover volume name is assumed.
    """
    if path.startswith("/"):
        container = crdb_container(snapshot.pod(index).get("spec", {})) or {}
        mount = find_mount_by_path(container, path)
        if mount and mount.get("name"):
            return mount["name"]
    return FAILOVER_VOLUME_NAME


def resolve_failover(
    snapshot: ClusterSnapshot, index: int, path: str
) -> StorageDescriptor:
    name = failover_volume_name(snapshot, index, path)
    return resolve_claim(snapshot, index, name)
