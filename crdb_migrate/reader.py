import base64
import binascii
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from crdb_migrate.errors import NotFound, ParseError, ReadError
from crdb_migrate.model import CRDB_CLUSTER_PLURAL, CRDB_GROUP, CRDB_VERSION


class ObjectReader:
    """
    Thin accessor over the Kubernetes object store.

    Every object is returned as a plain dict shaped like the API's JSON
    (camelCase keys). Reads never retry; a 404 becomes NotFound and any
    other API or connection failure becomes ReadError.
    """

    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.batch = client.BatchV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)

    @classmethod
    def from_kubeconfig(cls, kubeconfig: str | None = None) -> "ObjectReader":
        try:
            config.load_kube_config(config_file=kubeconfig)
        except (config.ConfigException, OSError) as e:
            raise ReadError(f"cannot load kubeconfig: {e}", name=kubeconfig) from e
        return cls(client.ApiClient())

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)

    def _call(self, kind: str, name: str, fn, *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise NotFound(f"{kind} not found", kind=kind, name=name) from e
            raise ReadError(
                f"API request failed with status {e.status} ({e.reason})",
                kind=kind,
                name=name,
            ) from e
        except HTTPError as e:
            raise ReadError(f"API server unreachable: {e}", kind=kind, name=name) from e

    def _get(self, kind: str, name: str, fn, *args, **kwargs) -> dict[str, Any]:
        return self._to_dict(self._call(kind, name, fn, *args, **kwargs))

    # ----------------------------
    # Reads
    # ----------------------------

    def get_statefulset(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get(
            "StatefulSet", name, self.apps.read_namespaced_stateful_set, name, namespace
        )

    def get_pod(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("Pod", name, self.core.read_namespaced_pod, name, namespace)

    def get_pvc(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get(
            "PersistentVolumeClaim",
            name,
            self.core.read_namespaced_persistent_volume_claim,
            name,
            namespace,
        )

    def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get(
            "Secret", name, self.core.read_namespaced_secret, name, namespace
        )

    def get_config_map(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get(
            "ConfigMap", name, self.core.read_namespaced_config_map, name, namespace
        )

    def get_service(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get(
            "Service", name, self.core.read_namespaced_service, name, namespace
        )

    def get_crdb_cluster(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get(
            "CrdbCluster",
            name,
            self.custom.get_namespaced_custom_object,
            CRDB_GROUP,
            CRDB_VERSION,
            namespace,
            CRDB_CLUSTER_PLURAL,
            name,
        )

    def find_job(self, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return self.get_job(namespace, name)
        except NotFound:
            return None

    def get_job(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("Job", name, self.batch.read_namespaced_job, name, namespace)

    # ----------------------------
    # Writes (config bridge only)
    # ----------------------------

    def create_config_map(self, namespace: str, body: dict[str, Any]) -> None:
        name = body["metadata"]["name"]
        self._call("ConfigMap", name, self.core.create_namespaced_config_map, namespace, body)

    def replace_config_map(self, namespace: str, body: dict[str, Any]) -> None:
        name = body["metadata"]["name"]
        self._call(
            "ConfigMap", name, self.core.replace_namespaced_config_map, name, namespace, body
        )


def decode_secret_data(secret: dict[str, Any]) -> dict[str, str]:
    """
    Decode a Secret's base64 `data` (and merge plain `stringData`).
    """
    name = secret.get("metadata", {}).get("name")
    decoded = {}
    for key, value in (secret.get("data") or {}).items():
        try:
            decoded[key] = base64.b64decode(value, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ParseError(
                f"secret key {key!r} is not base64-encoded UTF-8 text",
                kind="Secret",
                name=name,
            ) from e
    decoded.update(secret.get("stringData") or {})
    return decoded
