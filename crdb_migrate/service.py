import copy
from typing import Any

GRPC_PORT_NAME = "grpc"
SQL_PORT_NAME = "sql"
PROTOCOL = "TCP"

# Set by the API server; a re-applied manifest must not carry them.
SERVER_METADATA_FIELDS = (
    "creationTimestamp",
    "generation",
    "managedFields",
    "resourceVersion",
    "selfLink",
    "uid",
)


def _port(name: str, port: int) -> dict[str, Any]:
    return {"name": name, "protocol": PROTOCOL, "port": port, "targetPort": name}


def build_public_service(
    service: dict[str, Any], grpc_port: int, sql_port: int
) -> dict[str, Any]:
    """
    Rewrite the Helm chart's public service for split gRPC and SQL ports.

    Existing `grpc` and `sql` ports are replaced in place; missing ones are
    appended. Other ports (e.g. `http`) are left alone.
    """
    svc = copy.deepcopy(service)

    meta = svc.setdefault("metadata", {})
    for field in SERVER_METADATA_FIELDS:
        meta.pop(field, None)
    for field in ("apiVersion", "kind", "status"):
        svc.pop(field, None)

    wanted = {
        GRPC_PORT_NAME: _port(GRPC_PORT_NAME, grpc_port),
        SQL_PORT_NAME: _port(SQL_PORT_NAME, sql_port),
    }
    ports = svc.setdefault("spec", {}).get("ports") or []
    seen = set()
    for i, p in enumerate(ports):
        name = p.get("name")
        if name in wanted:
            ports[i] = wanted[name]
            seen.add(name)
    for name, port in wanted.items():
        if name not in seen:
            ports.append(port)
    svc["spec"]["ports"] = ports

    return {"apiVersion": "v1", "kind": "Service", **svc}
