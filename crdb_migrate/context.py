from typing import Any

from crdb_migrate.bridge import convert_secret_to_config_map, move_config_map_key
from crdb_migrate.errors import NotFound
from crdb_migrate.flags import (
    DEFAULTS,
    StartFlags,
    parse_additional_args,
    parse_container_flags,
)
from crdb_migrate.model import (
    DATA_VOLUME_NAME,
    LOG_CONFIG_VOLUME_NAME,
    claim_templates,
    crdb_container,
    env_list,
    find_volume,
    get_name,
    pod_template_meta,
    pod_template_spec,
)
from crdb_migrate.observation import ClusterObservation, SourceScheme
from crdb_migrate.snapshot import ClusterSnapshot
from crdb_migrate.walfailover import classify

VIRTUALIZED_FLAG = "--virtualized"
VIRTUALIZED_EMPTY_FLAG = "--virtualized-empty"

# CrdbCluster drops tlsEnabled from its JSON when it is false.
OPERATOR_TLS_DEFAULT = False

# ----------------------------
# Shared helpers
# ----------------------------


def _data_store_template(statefulset: dict[str, Any]) -> dict[str, Any]:
    templates = claim_templates(statefulset)
    for tmpl in templates:
        if tmpl.get("metadata", {}).get("name") == DATA_VOLUME_NAME:
            return tmpl.get("spec", {})
    if templates:
        return templates[0].get("spec", {})
    return {}


def _template_policy(statefulset: dict[str, Any]) -> dict[str, Any]:
    """
    Placement, lifecycle and container settings copied from the pod template.
    """
    spec = pod_template_spec(statefulset)
    meta = pod_template_meta(statefulset)
    container = crdb_container(spec) or {}
    return {
        "image": container.get("image"),
        "pod_labels": dict(meta.get("labels") or {}),
        "pod_annotations": dict(meta.get("annotations") or {}),
        "resources": container.get("resources") or {},
        "env": env_list(container),
        "affinity": spec.get("affinity"),
        "node_selector": dict(spec.get("nodeSelector") or {}),
        "tolerations": list(spec.get("tolerations") or []),
        "topology_spread_constraints": list(spec.get("topologySpreadConstraints") or []),
        "termination_grace_period_seconds": spec.get("terminationGracePeriodSeconds"),
        "service_account_name": spec.get("serviceAccountName"),
    }


def _wal_failover(flags: StartFlags, verbose: bool):
    if flags.wal_failover is None:
        return None
    return classify(flags.wal_failover, store_count=max(1, len(flags.stores)), verbose=verbose)


def detect_virtual_cluster(init_job: dict[str, Any] | None) -> str | None:
    """
    Replication mode from the cluster's init job: `--virtualized` marks a
    primary, `--virtualized-empty` a standby.
    """
    if not init_job:
        return None
    containers = (
        init_job.get("spec", {}).get("template", {}).get("spec", {}).get("containers")
        or []
    )
    if not containers:
        return None

    c = containers[0]
    parts = list(c.get("command") or []) + list(c.get("args") or [])
    tokens = [tok for part in parts for tok in str(part).split()]
    if VIRTUALIZED_EMPTY_FLAG in tokens:
        return "standby"
    if VIRTUALIZED_FLAG in tokens:
        return "primary"
    return None


# ----------------------------
# Helm StatefulSet
# ----------------------------


def log_config_secret(statefulset: dict[str, Any]) -> str | None:
    """
    Name of the secret the Helm chart mounts logging configuration from.
    """
    vol = find_volume(pod_template_spec(statefulset), LOG_CONFIG_VOLUME_NAME)
    if vol and vol.get("secret"):
        return vol["secret"].get("secretName")
    return None


def observe_helm(snapshot: ClusterSnapshot, verbose: bool = False) -> ClusterObservation:
    sts = snapshot.statefulset
    container = crdb_container(pod_template_spec(sts))
    if container is None:
        raise NotFound("pod template has no containers", kind="StatefulSet", name=get_name(sts))

    flags = parse_container_flags(container)
    if verbose:
        print(f"[DEBUG] Start command words: {flags.command}")
        print(f"[DEBUG] Dropped flags: {flags.dropped}")
        print(f"[DEBUG] Extra flags: {flags.extra_flags}")

    return ClusterObservation(
        name=snapshot.name,
        namespace=snapshot.namespace,
        source=SourceScheme.HELM,
        nodes=snapshot.node_count,
        sql_port=flags.resolved_sql_port(),
        grpc_port=DEFAULTS["grpc_port"],
        http_port=flags.resolved_http_port(),
        join=flags.join or "",
        tls_enabled=flags.resolved_tls(),
        locality_labels=flags.locality_labels,
        extra_flags=flags.extra_flags,
        stores=flags.stores,
        command=flags.command,
        logging_config_map=log_config_secret(sts),
        wal_failover=_wal_failover(flags, verbose),
        virtual_cluster=detect_virtual_cluster(snapshot.init_job),
        data_store_template=_data_store_template(sts),
        node_hosts=snapshot.hosts(),
        **_template_policy(sts),
    )


# ----------------------------
# Public-operator CrdbCluster
# ----------------------------


def operator_join(name: str, namespace: str, nodes: int, grpc_port: int) -> str:
    return ",".join(
        f"{name}-{i}.{name}.{namespace}:{grpc_port}" for i in range(nodes)
    )


def operator_flags(cluster_spec: dict[str, Any]) -> StartFlags:
    """
    Flags the public operator derived from first-class fields, followed by
    the user's additionalArgs.
    """
    flags = parse_additional_args(cluster_spec.get("additionalArgs") or [])
    derived: dict[str, str] = {}
    if cluster_spec.get("cache"):
        derived["--cache"] = cluster_spec["cache"]
    if cluster_spec.get("maxSQLMemory"):
        derived["--max-sql-memory"] = cluster_spec["maxSQLMemory"]
    flags.extra_flags = {**derived, **flags.extra_flags}
    return flags


def operator_tls(cluster_spec: dict[str, Any], running: StartFlags) -> bool:
    """
    TLS state of a public-operator cluster.

    An explicit `--insecure` setting on the running start command wins;
    otherwise `tlsEnabled` decides, absent meaning off.
    """
    if running.tls_enabled is not None:
        return running.tls_enabled
    return bool(cluster_spec.get("tlsEnabled", OPERATOR_TLS_DEFAULT))


def observe_operator(snapshot: ClusterSnapshot, verbose: bool = False) -> ClusterObservation:
    cluster = snapshot.cluster or {}
    spec = cluster.get("spec", {})
    name = snapshot.name
    sts = snapshot.statefulset
    policy = _template_policy(sts)

    container = crdb_container(pod_template_spec(sts))
    if container is None:
        raise NotFound("pod template has no containers", kind="StatefulSet", name=get_name(sts))
    running = parse_container_flags(container)

    nodes = int(spec.get("nodes", snapshot.node_count))
    grpc_port = spec.get("grpcPort") or DEFAULTS["grpc_port"]
    sql_port = spec.get("sqlPort") or DEFAULTS["sql_port"]
    http_port = spec.get("httpPort") or DEFAULTS["http_port"]
    tls_enabled = operator_tls(spec, running)

    flags = operator_flags(spec)
    if verbose:
        print(f"[DEBUG] Flags from CrdbCluster: {flags.extra_flags}")
        print(f"[DEBUG] TLS enabled: {tls_enabled}")

    # Fields set on the CrdbCluster win over what the StatefulSet carries.
    overrides = {
        "image": (spec.get("image") or {}).get("name"),
        "resources": spec.get("resources"),
        "env": spec.get("podEnvVariables"),
        "affinity": spec.get("affinity"),
        "node_selector": spec.get("nodeSelector"),
        "tolerations": spec.get("tolerations"),
        "topology_spread_constraints": spec.get("topologySpreadConstraints"),
        "termination_grace_period_seconds": spec.get("terminationGracePeriodSecs"),
    }
    for key, value in overrides.items():
        if value:
            policy[key] = value
    policy["pod_labels"] = {**policy["pod_labels"], **(spec.get("additionalLabels") or {})}
    policy["pod_annotations"] = {
        **policy["pod_annotations"],
        **(spec.get("additionalAnnotations") or {}),
    }

    return ClusterObservation(
        name=name,
        namespace=snapshot.namespace,
        source=SourceScheme.OPERATOR,
        nodes=nodes,
        sql_port=int(sql_port),
        grpc_port=int(grpc_port),
        http_port=int(http_port),
        join=operator_join(name, snapshot.namespace, nodes, int(grpc_port)),
        tls_enabled=tls_enabled,
        locality_labels=flags.locality_labels,
        extra_flags=flags.extra_flags,
        stores=flags.stores,
        command=flags.command,
        logging_config_map=spec.get("logConfigMap") or None,
        wal_failover=_wal_failover(flags, verbose),
        data_store_template=_data_store_template(snapshot.statefulset),
        node_hosts=snapshot.hosts(),
        **policy,
    )


OBSERVERS = {
    SourceScheme.HELM: observe_helm,
    SourceScheme.OPERATOR: observe_operator,
}


def build_observation(snapshot: ClusterSnapshot, verbose: bool = False) -> ClusterObservation:
    """
    Turn a snapshot into the scheme-neutral observation. Pure: nothing is
    written to the cluster here.
    """
    return OBSERVERS[snapshot.source](snapshot, verbose=verbose)


def bridge_logging_config(
    reader, observation: ClusterObservation, verbose: bool = False
) -> bool:
    """
    Make the observed logging configuration readable by the target operator.

    Helm mounts it from a secret, which is copied into a config map; the
    public operator keeps it in a config map under a different key.
    """
    name = observation.logging_config_map
    if not name:
        return False
    if observation.source is SourceScheme.HELM:
        return convert_secret_to_config_map(reader, observation.namespace, name, verbose=verbose)
    return move_config_map_key(reader, observation.namespace, name, verbose=verbose)
