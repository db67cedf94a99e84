from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from crdb_migrate.errors import ValidationError


class SourceScheme(str, Enum):
    """
    Management scheme the running cluster is read from.
    """

    HELM = "helm"  # StatefulSet rendered by the Helm chart
    OPERATOR = "operator"  # CrdbCluster managed by the public operator


class WalFailoverMode(str, Enum):
    DISABLED = "disabled"
    AMONG_STORES = "among-stores"
    PATH = "path"


@dataclass(frozen=True)
class StorageDescriptor:
    """
    One claim template resolved to the claim a specific node mounts.
    """

    name: str
    claim_name: str
    size: Optional[str]
    storage_class: Optional[str]
    mount_path: Optional[str]
    node_index: int
    host: str


@dataclass(frozen=True)
class WalFailover:
    mode: WalFailoverMode
    path: Optional[str] = None
    descriptor: Optional[StorageDescriptor] = None

    def __post_init__(self):
        if self.mode is WalFailoverMode.PATH and not self.path:
            raise ValidationError("path-mode WAL failover requires a path")

    def with_descriptor(self, descriptor: StorageDescriptor) -> "WalFailover":
        return WalFailover(mode=self.mode, path=self.path, descriptor=descriptor)

    def flag_value(self) -> str:
        """
        The `--wal-failover` value this classification came from.
        """
        if self.mode is WalFailoverMode.PATH:
            return f"path={self.path}"
        return self.mode.value

    def to_spec(self) -> dict[str, Any] | None:
        """
        Target walFailoverSpec, or None when the target has no equivalent.
        """
        if self.mode is WalFailoverMode.DISABLED:
            return {"status": "disable"}
        if self.mode is WalFailoverMode.AMONG_STORES:
            return None

        if self.descriptor is None:
            raise ValidationError(
                f"WAL failover path {self.path} has no resolved volume"
            )
        spec: dict[str, Any] = {
            "name": self.descriptor.name,
            "status": "enable",
            "path": self.path,
        }
        if self.descriptor.size:
            spec["size"] = self.descriptor.size
        if self.descriptor.storage_class:
            spec["storageClassName"] = self.descriptor.storage_class
        return spec


@dataclass(frozen=True)
class SecurityMaterialMap:
    """
    Source trust-material names and the names the target scheme expects.
    """

    source_ca: str
    source_node: str
    source_client: str
    ca_config_map: str
    node_secret: str
    client_secret: str

    def external_certificates(self) -> dict[str, str]:
        return {
            "caConfigMapName": self.ca_config_map,
            "nodeSecretName": self.node_secret,
            "rootSqlClientSecretName": self.client_secret,
        }

    def renames(self) -> dict[str, dict[str, str]]:
        """
        Source name -> target name for each piece of trust material.
        """
        return {
            "ca": {"from": self.source_ca, "to": self.ca_config_map},
            "node": {"from": self.source_node, "to": self.node_secret},
            "client": {"from": self.source_client, "to": self.client_secret},
        }


@dataclass
class ClusterObservation:
    """
    Scheme-neutral snapshot of a running cluster's actual configuration.
    """

    name: str
    namespace: str
    source: SourceScheme
    nodes: int
    sql_port: int
    grpc_port: int
    http_port: int
    join: str = ""
    tls_enabled: bool = True
    locality_labels: list[str] = field(default_factory=list)
    extra_flags: dict[str, str] = field(default_factory=dict)
    stores: list[str] = field(default_factory=list)
    command: list[str] = field(default_factory=list)
    logging_config_map: Optional[str] = None
    wal_failover: Optional[WalFailover] = None
    virtual_cluster: Optional[str] = None

    image: Optional[str] = None
    pod_labels: dict[str, str] = field(default_factory=dict)
    pod_annotations: dict[str, str] = field(default_factory=dict)
    resources: dict[str, Any] = field(default_factory=dict)
    env: list[dict[str, Any]] = field(default_factory=list)
    affinity: Optional[dict[str, Any]] = None
    node_selector: dict[str, str] = field(default_factory=dict)
    tolerations: list[dict[str, Any]] = field(default_factory=list)
    topology_spread_constraints: list[dict[str, Any]] = field(default_factory=list)
    termination_grace_period_seconds: Optional[int] = None
    service_account_name: Optional[str] = None
    data_store_template: dict[str, Any] = field(default_factory=dict)
    node_hosts: dict[int, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.nodes < 1:
            raise ValidationError(
                f"cluster must have at least one node, got {self.nodes}",
                name=self.name,
            )

    @property
    def store_count(self) -> int:
        return max(1, len(self.stores))
