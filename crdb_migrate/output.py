import json
import os
import re
import tempfile
from typing import Any

import yaml

NULL_TIMESTAMP_RE = re.compile(r"^\s*creationTimestamp: null\s*\n", re.MULTILINE)

# ----------------------------
# Manifest files
# ----------------------------


def dump_documents(docs: list[dict[str, Any]]) -> str:
    """
    Serialize objects as one `---`-separated YAML stream without the
    `creationTimestamp: null` lines copied objects carry.
    """
    text = yaml.safe_dump_all(
        docs, sort_keys=False, explicit_start=True, default_flow_style=False
    )
    return NULL_TIMESTAMP_RE.sub("", text)


def write_manifest(path: str, docs: dict[str, Any] | list[dict[str, Any]]) -> None:
    """
    Write the documents to `path` in one step: the stream goes to a temporary
    file next to the target, which then replaces it.
    """
    if isinstance(docs, dict):
        docs = [docs]
    text = dump_documents(docs)

    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def emit(
    output_dir: str, files: dict[str, dict[str, Any] | list[dict[str, Any]]]
) -> list[str]:
    """
    Write every `{filename: documents}` entry under `output_dir`.
    """
    os.makedirs(output_dir, exist_ok=True)
    written = []
    for filename, docs in files.items():
        path = os.path.join(output_dir, filename)
        write_manifest(path, docs)
        written.append(path)
    return written


# ----------------------------
# Run summary
# ----------------------------


def output_result(result: dict[str, Any], fmt: str = "text") -> None:
    """
    Print the run summary.
    - text: cluster, node hosts, flags carried over, certificate renames
      and files written
    - json / yaml: the summary dict as-is
    """
    if fmt == "json":
        print(json.dumps(result, indent=2))
        return

    if fmt == "yaml":
        print(yaml.safe_dump(result, sort_keys=False))
        return

    print(f"Cluster: {result['namespace']}/{result['cluster']}")
    print(f"Source: {result['source']}")
    print(f"Nodes: {result['nodes']}")

    hosts = result.get("hosts", {})
    if hosts:
        print("\nPlacement:")
        for idx in sorted(hosts, key=int):
            print(f"  node {idx}: {hosts[idx]}")

    if result.get("wal_failover"):
        print(f"\nWAL failover: {result['wal_failover']}")

    flags = result.get("flags", {})
    if flags:
        print("\nFlags:")
        for key, value in flags.items():
            print(f"  {key}={value}" if value != "" else f"  {key}")

    certs = result.get("certificates")
    if certs:
        print("\nCertificates to copy:")
        for role, names in certs.items():
            print(f"  {role}: {names['from']} -> {names['to']}")

    if result.get("config_maps"):
        print("\nConfig maps updated:")
        for name in result["config_maps"]:
            print(f"  - {name}")

    print("\nFiles:")
    for path in result.get("files", []):
        print(f"  - {path}")
