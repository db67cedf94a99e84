import base64
import copy
from typing import Any

from crdb_migrate.loader import MemoryObjectStore

NAMESPACE = "default"

HELM_START = (
    "exec /cockroach/cockroach start "
    "--join=${STATEFULSET_NAME}-0.${STATEFULSET_FQDN}:26257,"
    "${STATEFULSET_NAME}-1.${STATEFULSET_FQDN}:26257,"
    "${STATEFULSET_NAME}-2.${STATEFULSET_FQDN}:26257 "
    "--advertise-host=$(hostname).${STATEFULSET_FQDN} "
    "--certs-dir=/cockroach/cockroach-certs/ "
    "--http-port=8080 --port=26257 --cache=25% --max-sql-memory=25% "
    "--logtostderr=INFO --locality=country=us,region=us-central1"
)


def claim_template(name: str, size: str, storage_class: str | None = None) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": size}},
    }
    if storage_class:
        spec["storageClassName"] = storage_class
    return {"metadata": {"name": name}, "spec": spec}


def db_container(start: str, mounts: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "name": "db",
        "image": "cockroachdb/cockroach:v25.2.2",
        "args": ["shell", "-ecx", start],
        "env": [
            {"name": "STATEFULSET_NAME", "value": "cockroachdb"},
            {"name": "STATEFULSET_FQDN", "value": "cockroachdb.default.svc.cluster.local"},
        ],
        "resources": {"requests": {"cpu": "2", "memory": "8Gi"}},
        "volumeMounts": mounts
        or [{"name": "datadir", "mountPath": "/cockroach/cockroach-data/"}],
    }


def statefulset(
    name: str = "cockroachdb",
    replicas: int = 3,
    start: str = HELM_START,
    templates: list[dict[str, Any]] | None = None,
    mounts: list[dict[str, Any]] | None = None,
    log_secret: str | None = "cockroachdb-log-config",
) -> dict[str, Any]:
    volumes: list[dict[str, Any]] = [
        {"name": "datadir", "persistentVolumeClaim": {"claimName": "datadir"}},
        {"name": "certs", "emptyDir": {}},
    ]
    if log_secret:
        volumes.append({"name": "log-config", "secret": {"secretName": log_secret}})

    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": name, "namespace": NAMESPACE},
        "spec": {
            "replicas": replicas,
            "serviceName": name,
            "template": {
                "metadata": {
                    "labels": {"app.kubernetes.io/name": "cockroachdb"},
                    "annotations": {"prometheus.io/scrape": "true"},
                },
                "spec": {
                    "serviceAccountName": name,
                    "terminationGracePeriodSeconds": 300,
                    "nodeSelector": {"pool": "crdb"},
                    "containers": [db_container(start, mounts)],
                    "volumes": volumes,
                },
            },
            "volumeClaimTemplates": templates
            or [claim_template("datadir", "100Gi", "standard")],
        },
    }


def pod(
    sts: dict[str, Any],
    index: int,
    host: str | None = None,
    claims: dict[str, str] | None = None,
) -> dict[str, Any]:
    """
    Pod `index` of `sts`. `claims` maps volume name to claim name and
    defaults to one claim per template, named the way the controller does.
    """
    name = sts["metadata"]["name"]
    template = copy.deepcopy(sts["spec"]["template"])
    if claims is None:
        claims = {
            t["metadata"]["name"]: f"{t['metadata']['name']}-{name}-{index}"
            for t in sts["spec"]["volumeClaimTemplates"]
        }

    volumes = [
        v for v in template["spec"]["volumes"] if "persistentVolumeClaim" not in v
    ]
    for vol_name, claim in claims.items():
        volumes.append({"name": vol_name, "persistentVolumeClaim": {"claimName": claim}})
    template["spec"]["volumes"] = volumes
    template["spec"]["nodeName"] = f"node-{index}" if host is None else host

    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": f"{name}-{index}", "namespace": NAMESPACE},
        "spec": template["spec"],
    }


def pvc(
    name: str,
    size: str,
    storage_class: str | None = None,
    selected_node: str | None = None,
) -> dict[str, Any]:
    claim: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": name, "namespace": NAMESPACE},
        "spec": {"resources": {"requests": {"storage": size}}},
    }
    if storage_class:
        claim["spec"]["storageClassName"] = storage_class
    if selected_node:
        claim["metadata"]["annotations"] = {
            "volume.kubernetes.io/selected-node": selected_node
        }
    return claim


def claims_for(
    sts: dict[str, Any], pods: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """
    One claim per PVC volume on each pod, sized from the matching template.
    """
    templates = {t["metadata"]["name"]: t for t in sts["spec"]["volumeClaimTemplates"]}
    out = []
    for p in pods:
        for vol in p["spec"]["volumes"]:
            ref = vol.get("persistentVolumeClaim")
            if not ref:
                continue
            tmpl = templates.get(vol["name"], claim_template(vol["name"], "1Gi"))
            out.append(
                pvc(
                    ref["claimName"],
                    tmpl["spec"]["resources"]["requests"]["storage"],
                    tmpl["spec"].get("storageClassName"),
                    selected_node=p["spec"]["nodeName"],
                )
            )
    return out


def public_service(name: str = "cockroachdb") -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": f"{name}-public",
            "namespace": NAMESPACE,
            "uid": "4f1c7b1e-0000-0000-0000-000000000000",
            "resourceVersion": "1234",
            "creationTimestamp": "2025-01-01T00:00:00Z",
            "labels": {"app.kubernetes.io/name": "cockroachdb"},
        },
        "spec": {
            "type": "ClusterIP",
            "clusterIP": "10.0.0.10",
            "ports": [
                {"name": "grpc", "port": 26257, "protocol": "TCP", "targetPort": "grpc"},
                {"name": "http", "port": 8080, "protocol": "TCP", "targetPort": "http"},
            ],
            "selector": {"app.kubernetes.io/name": "cockroachdb"},
        },
        "status": {"loadBalancer": {}},
    }


def secret(name: str, data: dict[str, str]) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": NAMESPACE},
        "data": {
            k: base64.b64encode(v.encode("utf-8")).decode("ascii")
            for k, v in data.items()
        },
    }


def config_map(name: str, data: dict[str, str]) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": NAMESPACE},
        "data": dict(data),
    }


def init_job(name: str, command: list[str]) -> dict[str, Any]:
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": f"{name}-init", "namespace": NAMESPACE},
        "spec": {"template": {"spec": {"containers": [{"name": "init", "command": command}]}}},
    }


def helm_store(
    sts: dict[str, Any] | None = None,
    pods: list[dict[str, Any]] | None = None,
    extra: list[dict[str, Any]] | None = None,
) -> MemoryObjectStore:
    """
    A complete Helm-managed cluster: StatefulSet, pods, claims, public
    service and logging secret.
    """
    sts = sts or statefulset()
    if pods is None:
        pods = [pod(sts, i) for i in range(sts["spec"]["replicas"])]
    objects = [sts, *pods, *claims_for(sts, pods), public_service(sts["metadata"]["name"])]
    objects.append(secret("cockroachdb-log-config", {"log-config.yaml": "sinks: {}\n"}))
    objects.extend(extra or [])
    return MemoryObjectStore(objects)


def crdb_cluster(name: str = "cockroachdb", nodes: int = 3, **spec: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "nodes": nodes,
        "tlsEnabled": True,
        "grpcPort": 26258,
        "sqlPort": 26257,
        "httpPort": 8080,
        "cache": "30%",
        "maxSQLMemory": "2GB",
        "image": {"name": "cockroachdb/cockroach:v24.3.3"},
        "dataStore": {"pvc": {"spec": {"resources": {"requests": {"storage": "60Gi"}}}}},
    }
    body.update(spec)
    return {
        "apiVersion": "crdb.cockroachlabs.com/v1alpha1",
        "kind": "CrdbCluster",
        "metadata": {"name": name, "namespace": NAMESPACE},
        "spec": body,
    }


def operator_start(cluster: dict[str, Any]) -> str:
    """
    The start command the operator renders for `cluster`.
    """
    security = (
        "--certs-dir=/cockroach/cockroach-certs"
        if cluster["spec"].get("tlsEnabled")
        else "--insecure"
    )
    return f"exec /cockroach/cockroach.sh start --join=... {security}"


def operator_store(
    cluster: dict[str, Any] | None = None,
    extra: list[dict[str, Any]] | None = None,
    start: str | None = None,
) -> MemoryObjectStore:
    """
    A public-operator cluster: CrdbCluster plus the StatefulSet, pods and
    claims the operator created for it.
    """
    cluster = cluster or crdb_cluster()
    name = cluster["metadata"]["name"]
    nodes = cluster["spec"]["nodes"]

    container = {
        "name": "db",
        "image": cluster["spec"]["image"]["name"],
        "command": ["/bin/bash", "-ecx", start or operator_start(cluster)],
        "volumeMounts": [{"name": "datadir", "mountPath": "/cockroach/cockroach-data/"}],
    }
    sts = {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": name, "namespace": NAMESPACE},
        "spec": {
            "replicas": nodes,
            "template": {
                "metadata": {"labels": {"app.kubernetes.io/instance": name}},
                "spec": {
                    "serviceAccountName": f"{name}-sa",
                    "containers": [container],
                    "volumes": [],
                },
            },
            "volumeClaimTemplates": [claim_template("datadir", "60Gi")],
        },
    }
    pods = [pod(sts, i) for i in range(nodes)]
    objects = [cluster, sts, *pods, *claims_for(sts, pods)]
    objects.extend(extra or [])
    return MemoryObjectStore(objects)
