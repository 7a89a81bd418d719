"""Domain model for the reconciliation core."""

from __future__ import annotations

from .documents import (
    COMPREHENSIVE_DATA_KEY,
    CORE_PROFILE_FIELDS,
    ComprehensiveApplicationData,
    CoreProfileFields,
    DocumentShapeError,
    as_document,
    extract_subdocument,
    has_subdocument,
    merge_back,
    parse_core_fields,
    split_document,
)
from .entity import Entity, format_timestamp, has_path, lookup_path, parse_timestamp
from .enums import (
    PROTECTED_ROLES,
    ApplicationStatus,
    ChangeStatus,
    EntityType,
    OperationKind,
    Role,
)
from .operations import ChangeSet, Operation, single

__all__ = [
    "COMPREHENSIVE_DATA_KEY",
    "CORE_PROFILE_FIELDS",
    "PROTECTED_ROLES",
    "ApplicationStatus",
    "ChangeStatus",
    "ChangeSet",
    "ComprehensiveApplicationData",
    "CoreProfileFields",
    "DocumentShapeError",
    "Entity",
    "EntityType",
    "Operation",
    "OperationKind",
    "Role",
    "as_document",
    "extract_subdocument",
    "format_timestamp",
    "has_path",
    "has_subdocument",
    "lookup_path",
    "merge_back",
    "parse_core_fields",
    "parse_timestamp",
    "single",
    "split_document",
]
