import copy
import glob
import json
import os
from typing import Any

import yaml

from crdb_migrate.errors import NotFound, ParseError, ReadError

# ----------------------------
# Manifest file loading
# ----------------------------


def load_documents(path: str) -> list[dict[str, Any]]:
    """
    Load every Kubernetes object from a JSON or YAML file.

    `kind: List` wrappers are flattened; empty YAML documents are skipped.
    """
    try:
        with open(path, encoding="utf-8") as f:
            if path.endswith(".json"):
                docs = [json.load(f)]
            else:
                docs = list(yaml.safe_load_all(f))
    except OSError as e:
        raise ReadError(f"cannot read {path}: {e.strerror or e}") from e
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON in {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ParseError(f"invalid YAML in {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ParseError(f"{path} is not UTF-8 text") from e

    objects: list[dict[str, Any]] = []
    for doc in docs:
        if not doc:
            continue
        if not isinstance(doc, dict):
            raise ParseError(f"{path} must contain Kubernetes objects")
        if doc.get("kind", "").endswith("List") and "items" in doc:
            objects.extend(doc["items"])
        else:
            objects.append(doc)
    return objects


def load_manifest(path: str) -> dict[str, Any]:
    """
    Load a single backed-up object (the first document of the file).
    """
    docs = load_documents(path)
    if not docs:
        raise ParseError(f"{path} contains no objects")
    return docs[0]


# ----------------------------
# Offline object store
# ----------------------------


class MemoryObjectStore:
    """
    Object store backed by exported manifests instead of the API server.

    Exposes the same read/write surface as ObjectReader. Config maps written
    through it are kept in `written` so they can be emitted for review.
    """

    def __init__(self, objects: list[dict[str, Any]] | None = None):
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.written: dict[str, dict[str, Any]] = {}
        for obj in objects or []:
            self.add(obj)

    @classmethod
    def from_folder(cls, folder: str) -> "MemoryObjectStore":
        if not os.path.isdir(folder):
            raise ReadError(f"source directory not found: {folder}")
        files = []
        for pattern in ("*.json", "*.yaml", "*.yml"):
            files.extend(glob.glob(os.path.join(folder, pattern)))
        objects: list[dict[str, Any]] = []
        for path in sorted(files):
            objects.extend(load_documents(path))
        return cls(objects)

    def add(self, obj: dict[str, Any]) -> None:
        meta = obj.get("metadata", {})
        key = (obj.get("kind", ""), meta.get("namespace", "default"), meta.get("name", ""))
        self.objects[key] = copy.deepcopy(obj)

    def _get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        try:
            return copy.deepcopy(self.objects[(kind, namespace, name)])
        except KeyError:
            raise NotFound(f"{kind} not found", kind=kind, name=name) from None

    def get_statefulset(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("StatefulSet", namespace, name)

    def get_pod(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("Pod", namespace, name)

    def get_pvc(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("PersistentVolumeClaim", namespace, name)

    def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("Secret", namespace, name)

    def get_config_map(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("ConfigMap", namespace, name)

    def get_service(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("Service", namespace, name)

    def get_crdb_cluster(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("CrdbCluster", namespace, name)

    def get_job(self, namespace: str, name: str) -> dict[str, Any]:
        return self._get("Job", namespace, name)

    def find_job(self, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return self.get_job(namespace, name)
        except NotFound:
            return None

    def create_config_map(self, namespace: str, body: dict[str, Any]) -> None:
        obj = copy.deepcopy(body)
        obj.setdefault("apiVersion", "v1")
        obj.setdefault("kind", "ConfigMap")
        obj.setdefault("metadata", {}).setdefault("namespace", namespace)
        self.add(obj)
        self.written[obj["metadata"]["name"]] = obj

    def replace_config_map(self, namespace: str, body: dict[str, Any]) -> None:
        self.create_config_map(namespace, body)
