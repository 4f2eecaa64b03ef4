"""Typed workflow errors shared by the state machines, CRUD layer and API."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every error the workflow core raises on purpose."""

    code = "WORKFLOW_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidStatusTransition(WorkflowError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Invalid {entity} status transition from {current} to {target}")
        self.entity = entity
        self.current = current
        self.target = target


class InvalidState(WorkflowError):
    code = "INVALID_STATE"
    status_code = 409


class InvalidAmount(WorkflowError):
    code = "INVALID_AMOUNT"


class NotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationFailed(WorkflowError):
    code = "VALIDATION_FAILED"


class ConcurrencyConflict(WorkflowError):
    code = "CONCURRENCY_CONFLICT"
    status_code = 409
