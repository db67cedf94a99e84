from crdb_migrate.errors import ValidationError
from crdb_migrate.observation import WalFailover, WalFailoverMode

PATH_PREFIX = "path="


def classify(value: str, store_count: int = 1, verbose: bool = False) -> WalFailover:
    """
    Classify a --wal-failover value into exactly one of three modes.

    - "disabled"      -> DISABLED
    - "among-stores"  -> AMONG_STORES (needs more than one store per node)
    - "path=<mount>"  -> PATH (side disk; needs a volume behind the mount)

    Anything else is rejected rather than treated as disabled.
    """
    if value == WalFailoverMode.DISABLED.value:
        return WalFailover(mode=WalFailoverMode.DISABLED)

    if value == WalFailoverMode.AMONG_STORES.value:
        if store_count <= 1:
            raise ValidationError(
                "--wal-failover=among-stores requires more than one store per node, "
                f"found {store_count}"
            )
        return WalFailover(mode=WalFailoverMode.AMONG_STORES)

    if value.startswith(PATH_PREFIX):
        path = value[len(PATH_PREFIX):]
        if not path or "," in path:
            raise ValidationError(f"invalid --wal-failover path: {value!r}")
        if not path.startswith("/"):
            print(
                f"[WARNING] WAL failover path {path!r} is relative; "
                "it will be resolved against the store directory"
            )
        elif verbose:
            print(f"[DEBUG] WAL failover on side disk at {path}")
        return WalFailover(mode=WalFailoverMode.PATH, path=path)

    raise ValidationError(f"unrecognized --wal-failover value: {value!r}")
