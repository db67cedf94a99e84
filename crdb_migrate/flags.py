import re
from dataclasses import dataclass, field
from typing import Any, Optional

from crdb_migrate.errors import ParseError

# Helm serves gRPC and SQL on one port; the operator splits them and
# listens for gRPC on 26258.
DEFAULTS = {
    "sql_port": 26257,
    "grpc_port": 26258,
    "http_port": 8080,
    "tls_enabled": True,
}

START_WORDS = ("start", "start-single-node")

JOIN_FLAG = "--join"
PORT_FLAG = "--port"
HTTP_PORT_FLAG = "--http-port"
INSECURE_FLAG = "--insecure"
LOCALITY_FLAG = "--locality"
WAL_FAILOVER_FLAG = "--wal-failover"
STORE_FLAG = "--store"

# The operator adds its own logging flags.
DROPPED_FLAGS = ("--logtostderr", "--log-config-file")

_FLAG_RE = re.compile(r"^(--[\w][\w.-]*)(?:=(.*))?$", re.DOTALL)
_PORT_RE = re.compile(r"[0-9]+")


@dataclass
class StartFlags:
    """
    Fields recovered from a `cockroach start` command line.
    """

    sql_port: Optional[int] = None
    http_port: Optional[int] = None
    join: Optional[str] = None
    tls_enabled: Optional[bool] = None
    locality_labels: list[str] = field(default_factory=list)
    wal_failover: Optional[str] = None
    stores: list[str] = field(default_factory=list)
    extra_flags: dict[str, str] = field(default_factory=dict)
    command: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)

    def resolved_sql_port(self) -> int:
        return self.sql_port if self.sql_port is not None else DEFAULTS["sql_port"]

    def resolved_http_port(self) -> int:
        return self.http_port if self.http_port is not None else DEFAULTS["http_port"]

    def resolved_tls(self) -> bool:
        if self.tls_enabled is None:
            return DEFAULTS["tls_enabled"]
        return self.tls_enabled


def start_command_tokens(container: dict[str, Any]) -> list[str]:
    """
    Flatten a container's command and args into the tokens after `start`.

    Helm renders the start command as one shell script string
    (`["shell", "-ecx", "exec /cockroach/cockroach start ..."]`), so entries
    are split on whitespace. Substitution tokens are left untouched.
    """
    parts = list(container.get("command") or []) + list(container.get("args") or [])
    tokens = [tok for part in parts for tok in str(part).split() if tok != "\\"]

    for i, tok in enumerate(tokens):
        if tok in START_WORDS:
            return tokens[i:]

    raise ParseError(
        "no cockroach start command found",
        kind="Container",
        name=container.get("name"),
    )


def parse_port(flag: str, value: str | None) -> int:
    if value is None or not _PORT_RE.fullmatch(value.strip()):
        raise ParseError(f"invalid {flag} value: {value!r}")
    port = int(value)
    if not 0 < port < 65536:
        raise ParseError(f"{flag} value out of range: {port}")
    return port


def _parse_bool(flag: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in ("true", "1", "t", "yes"):
        return True
    if lowered in ("false", "0", "f", "no"):
        return False
    raise ParseError(f"invalid {flag} value: {value!r}")


def parse_start_flags(tokens: list[str]) -> StartFlags:
    """
    Classify every token of a start command.

    Known fields are lifted out; every other `--key[=value]` lands in
    `extra_flags` in first-seen order with the last value winning.
    """
    parsed = StartFlags()

    for tok in tokens:
        match = _FLAG_RE.match(tok)
        if not match:
            parsed.command.append(tok)
            continue

        key, value = match.group(1), match.group(2)

        if key == JOIN_FLAG:
            parsed.join = value or ""
        elif key == PORT_FLAG:
            parsed.sql_port = parse_port(key, value)
        elif key == HTTP_PORT_FLAG:
            parsed.http_port = parse_port(key, value)
        elif key == INSECURE_FLAG:
            insecure = True if value is None else _parse_bool(key, value)
            parsed.tls_enabled = not insecure
        elif key == LOCALITY_FLAG:
            parsed.locality_labels = locality_keys(value or "")
        elif key == WAL_FAILOVER_FLAG:
            parsed.wal_failover = value if value is not None else ""
        elif key == STORE_FLAG:
            parsed.stores.append(value or "")
        elif key in DROPPED_FLAGS:
            parsed.dropped.append(tok)
        else:
            parsed.extra_flags[key] = value if value is not None else ""

    return parsed


def locality_keys(value: str) -> list[str]:
    """
    `country=us,region=us-central1` -> ["country", "region"]
    """
    keys = []
    for tier in value.split(","):
        key, sep, _ = tier.partition("=")
        if sep and key:
            keys.append(key)
    return keys


def parse_container_flags(container: dict[str, Any]) -> StartFlags:
    return parse_start_flags(start_command_tokens(container))


def parse_additional_args(args: list[str]) -> StartFlags:
    """
    Parse a plain argument list (e.g. CrdbCluster.spec.additionalArgs).
    """
    tokens = [tok for arg in args for tok in str(arg).split()]
    return parse_start_flags(tokens)
