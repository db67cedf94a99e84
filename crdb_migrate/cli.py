import argparse
import json
import os
import sys

from crdb_migrate.engine import build_manifests
from crdb_migrate.errors import MigrationError
from crdb_migrate.loader import MemoryObjectStore
from crdb_migrate.observation import SourceScheme
from crdb_migrate.output import output_result
from crdb_migrate.reader import ObjectReader


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crdb-migrate",
        description="Generate CrdbNode manifests from a running CockroachDB cluster",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser(
        "build-manifest", help="Build CrdbNode manifests and Helm values"
    )
    build.add_argument(
        "source",
        choices=[s.value for s in SourceScheme],
        help="How the running cluster is managed (helm or operator)",
    )
    build.add_argument("--statefulset-name", help="Helm StatefulSet name")
    build.add_argument("--crdb-cluster", help="Public-operator CrdbCluster name")
    build.add_argument("--namespace", default="default")
    build.add_argument("--cloud-provider", required=True)
    build.add_argument("--cloud-region", required=True)
    build.add_argument(
        "--kubeconfig", default=os.path.join(os.path.expanduser("~"), ".kube", "config")
    )
    build.add_argument("--output-dir", default="./manifests")
    build.add_argument(
        "--cluster-manifest",
        help="Backup of the CrdbCluster object (operator source only)",
    )
    build.add_argument(
        "--source-dir",
        help="Read exported manifests from this folder instead of the API server",
    )
    build.add_argument(
        "--format",
        choices=["text", "json", "yaml"],
        default="text",
        help="Run summary format (text, json, yaml)",
    )
    build.add_argument("--verbose", action="store_true")
    return parser


def _object_name(parser: argparse.ArgumentParser, args) -> str | None:
    source = SourceScheme(args.source)
    if source is SourceScheme.HELM:
        if not args.statefulset_name:
            parser.error("--statefulset-name is required for helm source")
        if args.cluster_manifest:
            parser.error("--cluster-manifest only applies to operator source")
        return args.statefulset_name

    if not args.crdb_cluster and not args.cluster_manifest:
        parser.error("--crdb-cluster or --cluster-manifest is required for operator source")
    return args.crdb_cluster


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    name = _object_name(parser, args)

    try:
        if args.source_dir:
            reader = MemoryObjectStore.from_folder(args.source_dir)
        else:
            reader = ObjectReader.from_kubeconfig(args.kubeconfig)

        result = build_manifests(
            reader,
            name or "",
            args.namespace,
            SourceScheme(args.source),
            args.cloud_provider,
            args.cloud_region,
            args.output_dir,
            cluster_manifest=args.cluster_manifest,
            verbose=args.verbose,
        )
    except MigrationError as e:
        if args.format == "json":
            print(json.dumps(e.to_dict()), file=sys.stderr)
        else:
            print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    output_result(result, args.format)
    return 0


if __name__ == "__main__":
    sys.exit(main())
