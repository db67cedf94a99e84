from typing import Any


class MigrationError(Exception):
    """
    Base class for every condition that aborts a manifest build.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        name: str | None = None,
        node_index: int | None = None,
    ):
        self.message = message
        self.kind = kind
        self.name = name
        self.node_index = node_index
        super().__init__(str(self))

    def __str__(self) -> str:
        where: list[str] = []
        if self.node_index is not None:
            where.append(f"node {self.node_index}")
        if self.kind and self.name:
            where.append(f"{self.kind}/{self.name}")
        elif self.name:
            where.append(self.name)
        if where:
            return f"{self.message} ({', '.join(where)})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "kind": self.kind,
            "name": self.name,
            "node_index": self.node_index,
        }


class NotFound(MigrationError):
    """A required source object does not exist."""


class SchedulingIncomplete(MigrationError):
    """A pod has not been bound to a host yet."""


class NodeMismatch(MigrationError):
    """A claim or pod belongs to a different node than the one being resolved."""


class ClaimNotFound(MigrationError):
    """A claim template could not be followed to a concrete claim."""


class ReadError(MigrationError):
    """The API server, kubeconfig or an exported file could not be read."""


class ParseError(MigrationError, ValueError):
    """Malformed start command or flag value."""


class ValidationError(MigrationError, ValueError):
    """Well-formed input describing an unsupported combination."""
