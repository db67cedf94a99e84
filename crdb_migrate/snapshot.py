from typing import Any

from crdb_migrate.errors import NotFound, SchedulingIncomplete
from crdb_migrate.loader import load_manifest
from crdb_migrate.model import (
    get_name,
    pod_host,
    pod_name,
)
from crdb_migrate.observation import SourceScheme


class ClusterSnapshot:
    """
    Every object one manifest build reads, captured in a single pass.
    """

    def __init__(
        self,
        source: SourceScheme,
        namespace: str,
        statefulset: dict[str, Any],
        pods: list[dict[str, Any]],
        claims: dict[str, dict[str, Any]] | None = None,
        cluster: dict[str, Any] | None = None,
        public_service: dict[str, Any] | None = None,
        init_job: dict[str, Any] | None = None,
    ):
        self.source = source
        self.namespace = namespace
        self.statefulset = statefulset
        self.pods = pods
        self.claims: dict[str, dict[str, Any]] = claims or {}
        self.cluster = cluster
        self.public_service = public_service
        self.init_job = init_job

    @property
    def name(self) -> str:
        return get_name(self.statefulset)

    @property
    def node_count(self) -> int:
        return len(self.pods)

    def pod(self, index: int) -> dict[str, Any]:
        return self.pods[index]

    def hosts(self) -> dict[int, str]:
        return {i: pod_host(p) or "" for i, p in enumerate(self.pods)}


def _replicas(statefulset: dict[str, Any], cluster: dict[str, Any] | None) -> int:
    if cluster is not None and cluster.get("spec", {}).get("nodes") is not None:
        return int(cluster["spec"]["nodes"])
    replicas = statefulset.get("spec", {}).get("replicas")
    return 1 if replicas is None else int(replicas)


def _read_pods(reader, namespace: str, name: str, count: int) -> list[dict[str, Any]]:
    pods = []
    for idx in range(count):
        pod = reader.get_pod(namespace, pod_name(name, idx))
        if not pod_host(pod):
            raise SchedulingIncomplete(
                "pod isn't scheduled to a node",
                kind="Pod",
                name=get_name(pod),
                node_index=idx,
            )
        pods.append(pod)
    return pods


def _read_claims(
    reader, namespace: str, pods: list[dict[str, Any]]
) -> dict[str, dict[str, Any]]:
    """
    Fetch every claim the pods mount. A dangling reference is left out and
    reported by the storage resolver when (and if) a template needs it.
    """
    claims: dict[str, dict[str, Any]] = {}
    for pod in pods:
        for vol in pod.get("spec", {}).get("volumes", []) or []:
            ref = vol.get("persistentVolumeClaim")
            if not ref or not ref.get("claimName"):
                continue
            name = ref["claimName"]
            if name in claims:
                continue
            try:
                claims[name] = reader.get_pvc(namespace, name)
            except NotFound:
                continue
    return claims


def read_snapshot(
    reader,
    name: str,
    namespace: str,
    source: SourceScheme,
    cluster_manifest: str | None = None,
    verbose: bool = False,
) -> ClusterSnapshot:
    """
    Read the controller object, its pods (ordered by ordinal) and the
    storage and service objects they reference.
    """
    cluster = None
    if source is SourceScheme.OPERATOR:
        if cluster_manifest:
            cluster = load_manifest(cluster_manifest)
        else:
            cluster = reader.get_crdb_cluster(namespace, name)
        name = get_name(cluster)

    statefulset = reader.get_statefulset(namespace, name)
    count = _replicas(statefulset, cluster)
    pods = _read_pods(reader, namespace, name, count)
    claims = _read_claims(reader, namespace, pods)

    public_service = None
    init_job = None
    if source is SourceScheme.HELM:
        public_service = reader.get_service(namespace, f"{name}-public")
        init_job = reader.find_job(namespace, f"{name}-init")

    if verbose:
        print(f"[DEBUG] Read {source.value} cluster {namespace}/{name}")
        print(f"[DEBUG] Pods: {[get_name(p) for p in pods]}")
        print(f"[DEBUG] Claims: {sorted(claims)}")

    return ClusterSnapshot(
        source=source,
        namespace=namespace,
        statefulset=statefulset,
        pods=pods,
        claims=claims,
        cluster=cluster,
        public_service=public_service,
        init_job=init_job,
    )
