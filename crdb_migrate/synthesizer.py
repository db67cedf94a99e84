import copy
from typing import Any, Callable

from crdb_migrate.model import CRDB_API_VERSION, DATA_VOLUME_NAME
from crdb_migrate.observation import (
    ClusterObservation,
    SecurityMaterialMap,
    SourceScheme,
    StorageDescriptor,
    WalFailover,
)

CLUSTER_LABEL = "crdb.cockroachlabs.com/cluster"
CLOUD_PROVIDER_ANNOTATION = "crdb.cockroachlabs.com/cloudProvider"
NODE_FINALIZER = "crdbnode.crdb.cockroachlabs.com/finalizer"

HOST_IP_ENV = {
    "name": "HostIP",
    "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "status.hostIP"}},
}

# ----------------------------
# Shared field helpers
# ----------------------------


def _prune(fields: dict[str, Any]) -> dict[str, Any]:
    """
    Drop unset fields (None, empty maps and lists) so they are not emitted.
    """
    return {k: v for k, v in fields.items() if v is not None and v != {} and v != []}


def node_env(observation: ClusterObservation) -> list[dict[str, Any]]:
    env = copy.deepcopy(observation.env)
    if not any(e.get("name") == HOST_IP_ENV["name"] for e in env):
        env.append(copy.deepcopy(HOST_IP_ENV))
    return env


def start_flags(observation: ClusterObservation) -> dict[str, list[str]] | None:
    """
    `startFlags` handed to the target operator: every carried-over flag as
    one `--key=value` entry, in observed order.

    A single `--store` is dropped since the operator adds its own; several
    stores stay as repeated entries. The observed `--wal-failover` is kept.
    """
    upsert = [
        key if value == "" else f"{key}={value}"
        for key, value in observation.extra_flags.items()
    ]
    if len(observation.stores) > 1:
        upsert.extend(f"--store={store}" for store in observation.stores)
    if observation.wal_failover is not None:
        upsert.append(f"--wal-failover={observation.wal_failover.flag_value()}")
    if not upsert:
        return None
    return {"upsert": upsert}


def volume_claim_template(
    observation: ClusterObservation, datadir: StorageDescriptor | None = None
) -> dict[str, Any]:
    """
    The data volume claim template, pinned to the size and class of the
    claim the node actually mounts.
    """
    spec = copy.deepcopy(observation.data_store_template)
    if datadir is not None:
        if datadir.size:
            spec.setdefault("resources", {}).setdefault("requests", {})["storage"] = datadir.size
        if datadir.storage_class:
            spec["storageClassName"] = datadir.storage_class
    return {"metadata": {"name": DATA_VOLUME_NAME}, "spec": spec}


def termination_grace_period(observation: ClusterObservation) -> str | None:
    secs = observation.termination_grace_period_seconds
    if secs is None:
        return None
    return f"{int(secs)}s"


def wal_failover_spec(wal: WalFailover | None) -> dict[str, Any] | None:
    if wal is None:
        return None
    return wal.to_spec()


def certificates(
    observation: ClusterObservation, security: SecurityMaterialMap
) -> dict[str, Any] | None:
    if not observation.tls_enabled:
        return None
    return {"externalCertificates": security.external_certificates()}


def crdb_node(
    observation: ClusterObservation,
    index: int,
    cloud_provider: str,
    spec: dict[str, Any],
) -> dict[str, Any]:
    return {
        "apiVersion": CRDB_API_VERSION,
        "kind": "CrdbNode",
        "metadata": {
            "name": f"{observation.name}-{index}",
            "namespace": observation.namespace,
            "labels": {
                "app": "cockroachdb",
                "svc": "cockroachdb",
                CLUSTER_LABEL: observation.name,
            },
            "annotations": {CLOUD_PROVIDER_ANNOTATION: cloud_provider},
            "finalizers": [NODE_FINALIZER],
        },
        "spec": spec,
    }


def region(
    observation: ClusterObservation, cloud_provider: str, cloud_region: str
) -> dict[str, Any]:
    return {
        "namespace": observation.namespace,
        "cloudProvider": cloud_provider,
        "code": cloud_region,
        "nodes": observation.nodes,
        "domain": "",
    }


def tls_values(
    observation: ClusterObservation, security: SecurityMaterialMap
) -> dict[str, Any]:
    tls: dict[str, Any] = {
        "enabled": observation.tls_enabled,
        "selfSigner": {"enabled": False},
    }
    if observation.tls_enabled:
        tls["externalCertificates"] = {
            "enabled": True,
            "certificates": security.external_certificates(),
        }
    return tls


def service_ports(observation: ClusterObservation) -> dict[str, Any]:
    return {
        "ports": {
            "grpc": {"port": observation.grpc_port},
            "sql": {"port": observation.sql_port},
            "http": {"port": observation.http_port},
        }
    }


# ----------------------------
# Shared builders
# ----------------------------


def _node(
    observation: ClusterObservation,
    index: int,
    storage: dict[str, StorageDescriptor],
    security: SecurityMaterialMap,
    cloud_provider: str,
    wal_failover: WalFailover | None,
    service_account: str,
) -> dict[str, Any]:
    spec = {
        "nodeName": observation.node_hosts.get(index),
        "join": observation.join,
        "podLabels": dict(observation.pod_labels),
        "podAnnotations": dict(observation.pod_annotations),
        "startFlags": start_flags(observation),
        "dataStore": {
            "volumeClaimTemplate": volume_claim_template(
                observation, storage.get(DATA_VOLUME_NAME)
            )
        },
        "domain": "",
        "loggingConfigMapName": observation.logging_config_map,
        "env": node_env(observation),
        "resourceRequirements": copy.deepcopy(observation.resources),
        "image": observation.image,
        "serviceAccountName": service_account,
        "grpcPort": observation.grpc_port,
        "sqlPort": observation.sql_port,
        "httpPort": observation.http_port,
        "certificates": certificates(observation, security),
        "affinity": copy.deepcopy(observation.affinity),
        "nodeSelector": dict(observation.node_selector),
        "tolerations": copy.deepcopy(observation.tolerations),
        "topologySpreadConstraints": copy.deepcopy(observation.topology_spread_constraints),
        "terminationGracePeriod": termination_grace_period(observation),
        "localityLabels": list(observation.locality_labels),
        "walFailoverSpec": wal_failover_spec(wal_failover),
    }
    return crdb_node(observation, index, cloud_provider, _prune(spec))


def _values(
    observation: ClusterObservation,
    security: SecurityMaterialMap,
    cloud_provider: str,
    cloud_region: str,
    wal_failover: WalFailover | None,
    **scheme_fields: Any,
) -> dict[str, Any]:
    cluster = {
        "image": {"name": observation.image} if observation.image else None,
        "regions": [region(observation, cloud_provider, cloud_region)],
        "podLabels": dict(observation.pod_labels),
        "podAnnotations": dict(observation.pod_annotations),
        "resources": copy.deepcopy(observation.resources),
        "startFlags": start_flags(observation),
        "dataStore": {"volumeClaimTemplate": volume_claim_template(observation)},
        "service": service_ports(observation),
        "affinity": copy.deepcopy(observation.affinity),
        "nodeSelector": dict(observation.node_selector),
        "tolerations": copy.deepcopy(observation.tolerations),
        "topologySpreadConstraints": copy.deepcopy(observation.topology_spread_constraints),
        "terminationGracePeriod": termination_grace_period(observation),
        "loggingConfigMapName": observation.logging_config_map,
        "env": copy.deepcopy(observation.env),
        "localityLabels": list(observation.locality_labels),
        "walFailoverSpec": wal_failover_spec(wal_failover),
        **scheme_fields,
    }
    return {
        "cockroachdb": {
            "tls": tls_values(observation, security),
            "crdbCluster": _prune(cluster),
        }
    }


# ----------------------------
# Helm StatefulSet source
# ----------------------------


def helm_node(
    observation: ClusterObservation,
    index: int,
    storage: dict[str, StorageDescriptor],
    security: SecurityMaterialMap,
    cloud_provider: str,
    wal_failover: WalFailover | None = None,
) -> dict[str, Any]:
    return _node(
        observation,
        index,
        storage,
        security,
        cloud_provider,
        wal_failover,
        service_account=observation.service_account_name or observation.name,
    )


def helm_values(
    observation: ClusterObservation,
    security: SecurityMaterialMap,
    cloud_provider: str,
    cloud_region: str,
    wal_failover: WalFailover | None = None,
) -> dict[str, Any]:
    return _values(
        observation,
        security,
        cloud_provider,
        cloud_region,
        wal_failover,
        virtualCluster=(
            {"mode": observation.virtual_cluster} if observation.virtual_cluster else None
        ),
    )


# ----------------------------
# Public-operator CrdbCluster source
# ----------------------------


def operator_service_account(observation: ClusterObservation) -> str:
    return observation.service_account_name or f"{observation.name}-sa"


def operator_node(
    observation: ClusterObservation,
    index: int,
    storage: dict[str, StorageDescriptor],
    security: SecurityMaterialMap,
    cloud_provider: str,
    wal_failover: WalFailover | None = None,
) -> dict[str, Any]:
    return _node(
        observation,
        index,
        storage,
        security,
        cloud_provider,
        wal_failover,
        service_account=operator_service_account(observation),
    )


def operator_values(
    observation: ClusterObservation,
    security: SecurityMaterialMap,
    cloud_provider: str,
    cloud_region: str,
    wal_failover: WalFailover | None = None,
) -> dict[str, Any]:
    # rbac.yaml pre-creates the service account; the chart adopts it.
    return _values(
        observation,
        security,
        cloud_provider,
        cloud_region,
        wal_failover,
        rbac={
            "serviceAccount": {
                "create": True,
                "name": operator_service_account(observation),
            }
        },
    )


NodeBuilder = Callable[..., dict[str, Any]]
ValuesBuilder = Callable[..., dict[str, Any]]

BUILDERS: dict[SourceScheme, tuple[NodeBuilder, ValuesBuilder]] = {
    SourceScheme.HELM: (helm_node, helm_values),
    SourceScheme.OPERATOR: (operator_node, operator_values),
}


def synthesize(
    observation: ClusterObservation,
    storage: list[dict[str, StorageDescriptor]],
    failovers: list[WalFailover | None],
    security: SecurityMaterialMap,
    cloud_provider: str,
    cloud_region: str,
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """
    Build every CrdbNode and the shared values document.

    `storage[i]` and `failovers[i]` hold node i's resolved claims and its
    WAL failover (with descriptor, in path mode).
    """
    build_node, build_values = BUILDERS[observation.source]
    nodes = [
        build_node(
            observation,
            idx,
            storage[idx],
            security,
            cloud_provider,
            wal_failover=failovers[idx],
        )
        for idx in range(observation.nodes)
    ]
    values = build_values(
        observation,
        security,
        cloud_provider,
        cloud_region,
        wal_failover=failovers[0] if failovers else None,
    )
    return nodes, values
