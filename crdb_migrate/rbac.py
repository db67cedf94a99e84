from typing import Any

HELM_RELEASE_NAME_ANNOTATION = "meta.helm.sh/release-name"
HELM_RELEASE_NAMESPACE_ANNOTATION = "meta.helm.sh/release-namespace"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
RBAC_API_VERSION = "rbac.authorization.k8s.io/v1"
RBAC_GROUP = "rbac.authorization.k8s.io"

CLUSTER_RULES = [
    {"apiGroups": [""], "resources": ["nodes"], "verbs": ["get"]},
    {
        "apiGroups": ["certificates.k8s.io"],
        "resources": ["certificatesigningrequests"],
        "verbs": ["create", "get", "watch"],
    },
]

NAMESPACE_RULES = [
    {"apiGroups": [""], "resources": ["secrets"], "verbs": ["create", "get"]},
    {"apiGroups": [""], "resources": ["configmaps"], "verbs": ["get"]},
]


def _metadata(name: str, namespace: str, namespaced: bool) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name}
    if namespaced:
        meta["namespace"] = namespace
    meta["labels"] = {MANAGED_BY_LABEL: "Helm"}
    meta["annotations"] = {
        HELM_RELEASE_NAME_ANNOTATION: name,
        HELM_RELEASE_NAMESPACE_ANNOTATION: namespace,
    }
    return meta


def build_rbac(
    name: str, namespace: str, service_account: str | None = None
) -> list[dict[str, Any]]:
    """
    RBAC objects the target chart expects for a cluster it takes over.

    Every object carries Helm's ownership annotations so `helm install`
    adopts it instead of failing on an existing resource.
    """
    sa = service_account or f"{name}-sa"
    subject = {"kind": "ServiceAccount", "name": sa, "namespace": namespace}

    return [
        {
            "apiVersion": RBAC_API_VERSION,
            "kind": "ClusterRole",
            "metadata": _metadata(name, namespace, namespaced=False),
            "rules": CLUSTER_RULES,
        },
        {
            "apiVersion": RBAC_API_VERSION,
            "kind": "ClusterRoleBinding",
            "metadata": _metadata(name, namespace, namespaced=False),
            "roleRef": {"apiGroup": RBAC_GROUP, "kind": "ClusterRole", "name": name},
            "subjects": [subject],
        },
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {
                **_metadata(sa, namespace, namespaced=True),
                "annotations": {
                    HELM_RELEASE_NAME_ANNOTATION: name,
                    HELM_RELEASE_NAMESPACE_ANNOTATION: namespace,
                },
            },
        },
        {
            "apiVersion": RBAC_API_VERSION,
            "kind": "Role",
            "metadata": _metadata(name, namespace, namespaced=True),
            "rules": NAMESPACE_RULES,
        },
        {
            "apiVersion": RBAC_API_VERSION,
            "kind": "RoleBinding",
            "metadata": _metadata(name, namespace, namespaced=True),
            "roleRef": {"apiGroup": RBAC_GROUP, "kind": "Role", "name": name},
            "subjects": [subject],
        },
    ]
