from typing import Any

from crdb_migrate.errors import NotFound
from crdb_migrate.observation import SecurityMaterialMap, SourceScheme
from crdb_migrate.reader import decode_secret_data

# Key renames applied when a logging secret becomes a config map.
LOG_CONFIG_KEY_RENAMES = {"log-config.yaml": "logs.yaml"}

# Key the target operator reads its logging configuration from, and the key
# the public operator used for the same payload.
LOGS_KEY = "logs.yaml"
LEGACY_LOGGING_KEY = "logging.yaml"


def security_material(source: SourceScheme, name: str) -> SecurityMaterialMap:
    """
    Map the source scheme's trust-material names to the names the target
    scheme is pointed at. Nothing is regenerated; only names change.
    """
    if source is SourceScheme.HELM:
        return SecurityMaterialMap(
            source_ca=f"{name}-ca-secret",
            source_node=f"{name}-node-secret",
            source_client=f"{name}-client-secret",
            ca_config_map=f"{name}-ca-secret",
            node_secret=f"{name}-node-secret",
            client_secret=f"{name}-client-secret",
        )
    return SecurityMaterialMap(
        source_ca=f"{name}-node",
        source_node=f"{name}-node",
        source_client=f"{name}-root",
        ca_config_map=f"{name}-ca",
        node_secret=f"{name}-node-secret",
        client_secret=f"{name}-client-secret",
    )


def _config_map(namespace: str, name: str, data: dict[str, str]) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
        "data": data,
    }


def renamed_log_config(data: dict[str, str]) -> dict[str, str]:
    return {LOG_CONFIG_KEY_RENAMES.get(key, key): value for key, value in data.items()}


def convert_secret_to_config_map(
    reader, namespace: str, name: str, verbose: bool = False
) -> bool:
    """
    Copy a logging secret into a config map of the same name.

    Keys are renamed through LOG_CONFIG_KEY_RENAMES. An existing config map
    only gains the keys it lacks. The secret itself is never modified.
    Returns True when the config map was created or changed.
    """
    secret = reader.get_secret(namespace, name)
    data = renamed_log_config(decode_secret_data(secret))

    try:
        existing = reader.get_config_map(namespace, name)
    except NotFound:
        reader.create_config_map(namespace, _config_map(namespace, name, data))
        if verbose:
            print(f"[DEBUG] Created config map {namespace}/{name} from secret")
        return True

    current = existing.get("data") or {}
    missing = {k: v for k, v in data.items() if k not in current}
    if not missing:
        if verbose:
            print(f"[DEBUG] Config map {namespace}/{name} already up to date")
        return False

    existing["data"] = {**current, **missing}
    reader.replace_config_map(namespace, existing)
    if verbose:
        print(f"[DEBUG] Added keys {sorted(missing)} to config map {namespace}/{name}")
    return True


def move_config_map_key(
    reader, namespace: str, name: str, verbose: bool = False
) -> bool:
    """
    Copy `logging.yaml` to `logs.yaml` inside an existing config map.

    The original key stays. Returns True when the config map changed.
    """
    cm = reader.get_config_map(namespace, name)
    data = cm.get("data") or {}

    if LEGACY_LOGGING_KEY not in data:
        if verbose:
            print(f"[DEBUG] Config map {namespace}/{name} has no {LEGACY_LOGGING_KEY}")
        return False
    if data.get(LOGS_KEY) == data[LEGACY_LOGGING_KEY]:
        return False

    cm["data"] = {**data, LOGS_KEY: data[LEGACY_LOGGING_KEY]}
    reader.replace_config_map(namespace, cm)
    if verbose:
        print(f"[DEBUG] Copied {LEGACY_LOGGING_KEY} to {LOGS_KEY} in {namespace}/{name}")
    return True
