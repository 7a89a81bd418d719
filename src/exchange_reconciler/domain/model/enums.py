"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    """Store namespace for each entity kind."""

    USER = "users"
    PROFILE = "profiles"
    APPLICATION = "studentApplications"
    PLACEMENT = "placements"
    CHANGE_QUEUE_ITEM = "changeQueue"


class Role(StrEnum):
    ADMIN = "admin"
    STUDENT = "student"
    HOST_FAMILY = "host_family"
    COORDINATOR = "coordinator"
    REGIONAL_DIRECTOR = "regional_director"
    SENDING_ORG = "sending_org"


class ApplicationStatus(StrEnum):
    PENDING_REVIEW = "pending_review"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_review_complete(self) -> bool:
        return self in {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}

    @property
    def is_pending(self) -> bool:
        return self in {ApplicationStatus.PENDING_REVIEW, ApplicationStatus.UNDER_REVIEW}


class ChangeStatus(StrEnum):
    """Decision state of a change-queue item."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def is_decided(self) -> bool:
        return self is not ChangeStatus.PENDING


class OperationKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Roles that duplicate removal may never delete.
PROTECTED_ROLES: frozenset[str] = frozenset({Role.ADMIN})
