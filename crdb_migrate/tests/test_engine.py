import os

import pytest
import yaml

from crdb_migrate.engine import build_manifests
from crdb_migrate.errors import (
    ClaimNotFound,
    NotFound,
    SchedulingIncomplete,
    ValidationError,
)
from crdb_migrate.loader import MemoryObjectStore
from crdb_migrate.observation import SourceScheme
from crdb_migrate.tests.factories import (
    claim_template,
    config_map,
    crdb_cluster,
    helm_store,
    operator_store,
    pod,
    statefulset,
)

SCENARIO_START = (
    "exec /cockroach/cockroach start --join=a-0:26257,a-1:26257,a-2:26257 "
    "--http-port=8080 --port=26257 --cache=25%"
)
FAILOVER_START = SCENARIO_START + " --wal-failover=path=/data/wal-failover"
FAILOVER_MOUNTS = [
    {"name": "datadir", "mountPath": "/cockroach/cockroach-data/"},
    {"name": "failoverdir", "mountPath": "/data/wal-failover"},
]


def _run(store, out, name="a", source=SourceScheme.HELM, **kwargs):
    return build_manifests(
        store, name, "default", source, "gcp", "us-central1", str(out), **kwargs
    )


def _load(out, filename):
    with open(os.path.join(out, filename)) as f:
        docs = list(yaml.safe_load_all(f))
    return docs[0] if len(docs) == 1 else docs


def _failover_sts():
    return statefulset(
        name="a",
        start=FAILOVER_START,
        templates=[
            claim_template("datadir", "100Gi", "standard"),
            claim_template("failoverdir", "50Gi", "fast-ssd"),
        ],
        mounts=FAILOVER_MOUNTS,
    )


def test_three_node_cluster_without_failover(tmp_path):
    store = helm_store(statefulset(name="a", start=SCENARIO_START))
    result = _run(store, tmp_path)

    assert result["nodes"] == 3
    for idx in range(3):
        spec = _load(tmp_path, f"crdbnode-{idx}.yaml")["spec"]
        assert spec["sqlPort"] == 26257
        assert spec["httpPort"] == 8080
        assert spec["grpcPort"] == 26258
        assert spec["join"] == "a-0:26257,a-1:26257,a-2:26257"
        assert spec["startFlags"] == {"upsert": ["--cache=25%"]}
        assert "walFailoverSpec" not in spec

    svc = _load(tmp_path, "public-service.yaml")
    assert {p["name"]: p["port"] for p in svc["spec"]["ports"]} == {
        "grpc": 26258,
        "http": 8080,
        "sql": 26257,
    }
    assert not os.path.exists(tmp_path / "rbac.yaml")


def test_failover_side_disk_on_every_node(tmp_path):
    _run(helm_store(_failover_sts()), tmp_path)

    for idx in range(3):
        spec = _load(tmp_path, f"crdbnode-{idx}.yaml")["spec"]
        assert spec["walFailoverSpec"] == {
            "name": "failoverdir",
            "status": "enable",
            "path": "/data/wal-failover",
            "size": "50Gi",
            "storageClassName": "fast-ssd",
        }
        assert spec["startFlags"]["upsert"] == [
            "--cache=25%",
            "--wal-failover=path=/data/wal-failover",
        ]
    values = _load(tmp_path, "values.yaml")
    assert values["cockroachdb"]["crdbCluster"]["walFailoverSpec"]["size"] == "50Gi"


def test_failover_claim_missing_on_other_nodes(tmp_path):
    sts = _failover_sts()
    pods = [
        pod(sts, 0),
        pod(sts, 1, claims={"datadir": "datadir-a-1"}),
        pod(sts, 2, claims={"datadir": "datadir-a-2"}),
    ]
    out = tmp_path / "out"
    with pytest.raises(ClaimNotFound) as exc:
        _run(helm_store(sts, pods), out)
    assert exc.value.node_index == 1
    assert not out.exists()


def test_among_stores_with_one_store_writes_nothing(tmp_path):
    sts = statefulset(name="a", start=SCENARIO_START + " --wal-failover=among-stores")
    store = helm_store(sts)
    out = tmp_path / "out"

    with pytest.raises(ValidationError):
        _run(store, out)

    assert not out.exists()
    assert store.written == {}


def test_logging_secret_is_bridged(tmp_path):
    store = helm_store(statefulset(name="a", start=SCENARIO_START))
    secret_before = store.get_secret("default", "cockroachdb-log-config")

    result = _run(store, tmp_path)

    cm = _load(tmp_path, "configmap-cockroachdb-log-config.yaml")
    assert cm["data"] == {"logs.yaml": "sinks: {}\n"}
    assert result["config_maps"] == ["cockroachdb-log-config"]
    assert store.get_secret("default", "cockroachdb-log-config") == secret_before
    node = _load(tmp_path, "crdbnode-0.yaml")
    assert node["spec"]["loggingConfigMapName"] == "cockroachdb-log-config"


def test_rerun_is_byte_identical(tmp_path):
    store = helm_store(statefulset(name="a", start=SCENARIO_START))
    first, second = tmp_path / "first", tmp_path / "second"
    _run(store, first)
    _run(store, second)

    for filename in sorted(os.listdir(first)):
        assert (first / filename).read_bytes() == (second / filename).read_bytes()


def test_unscheduled_pod(tmp_path):
    sts = statefulset(name="a", replicas=2)
    pods = [pod(sts, 0), pod(sts, 1, host="")]
    with pytest.raises(SchedulingIncomplete) as exc:
        _run(helm_store(sts, pods), tmp_path / "out")
    assert "node 1" in str(exc.value)


def test_missing_statefulset(tmp_path):
    with pytest.raises(NotFound):
        _run(MemoryObjectStore(), tmp_path / "out")


def test_operator_cluster(tmp_path):
    cluster = crdb_cluster(logConfigMap="crdb-logs")
    store = operator_store(cluster, extra=[config_map("crdb-logs", {"logging.yaml": "x"})])
    result = _run(store, tmp_path, name="cockroachdb", source=SourceScheme.OPERATOR)

    assert sorted(os.listdir(tmp_path)) == [
        "configmap-crdb-logs.yaml",
        "crdbnode-0.yaml",
        "crdbnode-1.yaml",
        "crdbnode-2.yaml",
        "rbac.yaml",
        "values.yaml",
    ]
    assert result["source"] == "operator"
    assert result["certificates"]["client"] == {
        "from": "cockroachdb-root",
        "to": "cockroachdb-client-secret",
    }

    node = _load(tmp_path, "crdbnode-2.yaml")
    assert node["spec"]["join"].startswith("cockroachdb-0.cockroachdb.default:26258,")
    assert node["spec"]["startFlags"] == {"upsert": ["--cache=30%", "--max-sql-memory=2GB"]}
    assert node["spec"]["certificates"]["externalCertificates"]["caConfigMapName"] == (
        "cockroachdb-ca"
    )
    assert node["spec"]["loggingConfigMapName"] == "crdb-logs"

    rbac = _load(tmp_path, "rbac.yaml")
    assert [d["kind"] for d in rbac][:2] == ["ClusterRole", "ClusterRoleBinding"]

    cm = _load(tmp_path, "configmap-crdb-logs.yaml")
    assert cm["data"] == {"logging.yaml": "x", "logs.yaml": "x"}


def test_insecure_operator_cluster(tmp_path):
    cluster = crdb_cluster()
    del cluster["spec"]["tlsEnabled"]
    result = _run(
        operator_store(cluster), tmp_path, name="cockroachdb", source=SourceScheme.OPERATOR
    )

    for idx in range(3):
        assert "certificates" not in _load(tmp_path, f"crdbnode-{idx}.yaml")["spec"]
    assert _load(tmp_path, "values.yaml")["cockroachdb"]["tls"]["enabled"] is False
    assert result["certificates"] is None
