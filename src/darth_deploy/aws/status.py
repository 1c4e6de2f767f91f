"""CloudFormation stack and resource status helpers."""

from __future__ import annotations

from enum import Enum


class ResourceKind(str, Enum):
    """The resource types the streaming and rendering code treats specially."""

    NESTED_STACK = "AWS::CloudFormation::Stack"
    ECS_SERVICE = "AWS::ECS::Service"
    OTHER = "other"

    @classmethod
    def of(cls, resource_type: str) -> ResourceKind:
        try:
            return cls(resource_type)
        except ValueError:
            return cls.OTHER


CREATE_TERMINAL_STATUSES = frozenset(
    {
        "CREATE_COMPLETE",
        "CREATE_FAILED",
        "ROLLBACK_COMPLETE",
        "ROLLBACK_FAILED",
        "DELETE_COMPLETE",
        "DELETE_FAILED",
    }
)

UPDATE_TERMINAL_STATUSES = frozenset(
    {
        "UPDATE_COMPLETE",
        "UPDATE_FAILED",
        "UPDATE_ROLLBACK_COMPLETE",
        "UPDATE_ROLLBACK_FAILED",
    }
)

DELETE_TERMINAL_STATUSES = frozenset({"DELETE_COMPLETE", "DELETE_FAILED"})


def is_in_progress(status: str) -> bool:
    return status.endswith("_IN_PROGRESS")


def is_upsert_in_progress(status: str) -> bool:
    """Whether a resource is being created or updated (not rolled back)."""
    return status in ("CREATE_IN_PROGRESS", "UPDATE_IN_PROGRESS")


def is_upserted(status: str) -> bool:
    return status in ("CREATE_COMPLETE", "UPDATE_COMPLETE")


def is_failure(status: str) -> bool:
    """Whether a stack or resource status denotes a failure.

    Rolled-back stacks count as failures even though their status ends in
    ``_COMPLETE``: the requested change was not applied.
    """
    return "FAILED" in status or "ROLLBACK" in status


def is_terminal(status: str, *, created: bool) -> bool:
    """Whether a stack status ends a create (or update) operation."""
    if created:
        return status in CREATE_TERMINAL_STATUSES
    return status in UPDATE_TERMINAL_STATUSES


def is_delete_terminal(status: str) -> bool:
    return status in DELETE_TERMINAL_STATUSES
