from typing import Any

from crdb_migrate.bridge import security_material
from crdb_migrate.context import bridge_logging_config, build_observation
from crdb_migrate.loader import MemoryObjectStore
from crdb_migrate.observation import (
    ClusterObservation,
    SecurityMaterialMap,
    SourceScheme,
    StorageDescriptor,
    WalFailover,
    WalFailoverMode,
)
from crdb_migrate.output import emit
from crdb_migrate.rbac import build_rbac
from crdb_migrate.service import build_public_service
from crdb_migrate.snapshot import ClusterSnapshot, read_snapshot
from crdb_migrate.storage import resolve_failover, resolve_node_storage
from crdb_migrate.synthesizer import operator_service_account, synthesize

PUBLIC_SERVICE_FILE = "public-service.yaml"
RBAC_FILE = "rbac.yaml"
VALUES_FILE = "values.yaml"


def node_file(index: int) -> str:
    return f"crdbnode-{index}.yaml"


def resolve_storage(
    snapshot: ClusterSnapshot, observation: ClusterObservation, verbose: bool = False
) -> tuple[list[dict[str, StorageDescriptor]], list[WalFailover | None]]:
    """
    Resolve claims for every node. Any broken correlation aborts the run.
    """
    storage = []
    failovers: list[WalFailover | None] = []
    wal = observation.wal_failover

    for idx in range(observation.nodes):
        resolved = resolve_node_storage(snapshot, idx)
        storage.append(resolved)

        if wal is not None and wal.mode is WalFailoverMode.PATH:
            descriptor = resolve_failover(snapshot, idx, wal.path or "")
            failovers.append(wal.with_descriptor(descriptor))
        else:
            failovers.append(wal)

        if verbose:
            claims = {k: v.claim_name for k, v in resolved.items()}
            print(f"[DEBUG] Node {idx} on {observation.node_hosts.get(idx)}: {claims}")

    return storage, failovers


def build_files(
    snapshot: ClusterSnapshot,
    observation: ClusterObservation,
    storage: list[dict[str, StorageDescriptor]],
    failovers: list[WalFailover | None],
    security: SecurityMaterialMap,
    cloud_provider: str,
    cloud_region: str,
) -> dict[str, Any]:
    """
    Every output file keyed by file name. No I/O.
    """
    nodes, values = synthesize(
        observation, storage, failovers, security, cloud_provider, cloud_region
    )

    files: dict[str, Any] = {node_file(i): node for i, node in enumerate(nodes)}
    files[VALUES_FILE] = values

    if observation.source is SourceScheme.HELM and snapshot.public_service is not None:
        files[PUBLIC_SERVICE_FILE] = build_public_service(
            snapshot.public_service, observation.grpc_port, observation.sql_port
        )
    if observation.source is SourceScheme.OPERATOR:
        files[RBAC_FILE] = build_rbac(
            observation.name,
            observation.namespace,
            operator_service_account(observation),
        )
    return files


def build_manifests(
    reader,
    name: str,
    namespace: str,
    source: SourceScheme,
    cloud_provider: str,
    cloud_region: str,
    output_dir: str,
    cluster_manifest: str | None = None,
    verbose: bool = False,
) -> dict[str, Any]:
    """
    Read the running cluster and write the equivalent CrdbNode manifests.

    Reading, flag interpretation, failover classification, storage
    resolution and synthesis all finish before the logging config is bridged
    and before the first file is written.
    """
    snapshot = read_snapshot(
        reader, name, namespace, source, cluster_manifest=cluster_manifest, verbose=verbose
    )
    observation = build_observation(snapshot, verbose=verbose)
    storage, failovers = resolve_storage(snapshot, observation, verbose=verbose)
    security = security_material(observation.source, observation.name)
    files = build_files(
        snapshot, observation, storage, failovers, security, cloud_provider, cloud_region
    )

    bridge_logging_config(reader, observation, verbose=verbose)

    # Offline runs cannot reach the cluster; hand the config maps over as files.
    config_maps = []
    if isinstance(reader, MemoryObjectStore):
        for cm_name, cm in sorted(reader.written.items()):
            files[f"configmap-{cm_name}.yaml"] = cm
            config_maps.append(cm_name)
    elif observation.logging_config_map:
        config_maps.append(observation.logging_config_map)

    written = emit(output_dir, files)
    if verbose:
        print(f"[DEBUG] Wrote {len(written)} files to {output_dir}")

    return {
        "cluster": observation.name,
        "namespace": observation.namespace,
        "source": observation.source.value,
        "nodes": observation.nodes,
        "hosts": {str(k): v for k, v in sorted(observation.node_hosts.items())},
        "wal_failover": (
            observation.wal_failover.mode.value if observation.wal_failover else None
        ),
        "flags": dict(observation.extra_flags),
        "certificates": security.renames() if observation.tls_enabled else None,
        "config_maps": config_maps,
        "files": written,
    }
