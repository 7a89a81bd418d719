"""Schema-on-read views over the free-form ``profile.data`` document.

Profiles historically store two kinds of content in one JSON blob: the core
fields every screen reads, and a large nested application record under
``comprehensive_application_data``. The views below are the only place that
knows how the blob is laid out; detectors and the migrator go through them
instead of poking at raw dictionaries.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final, cast

from pydantic import BaseModel, ConfigDict, JsonValue, RootModel, ValidationError

COMPREHENSIVE_DATA_KEY: Final[str] = "comprehensive_application_data"

CORE_PROFILE_FIELDS: Final[tuple[str, ...]] = (
    "type",
    "first_name",
    "last_name",
    "email",
    "country_of_origin",
    "date_of_birth",
    "gender",
    "school_grade",
    "applicationStatus",
    "sevisStatus",
    "approved_by",
    "approved_on",
    "program",
    "native_language",
    "english_proficiency",
)


class DocumentShapeError(ValueError):
    """Raised when an embedded document does not have the expected shape."""

    def __init__(self, message: str, *, entity_id: str | None = None) -> None:
        self.entity_id = entity_id
        prefix = f"{entity_id}: " if entity_id else ""
        super().__init__(f"{prefix}{message}")


class CoreProfileFields(BaseModel):
    """Allow-listed core fields; anything else in the blob is dropped on parse."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    type: JsonValue = None
    first_name: JsonValue = None
    last_name: JsonValue = None
    email: JsonValue = None
    country_of_origin: JsonValue = None
    date_of_birth: JsonValue = None
    gender: JsonValue = None
    school_grade: JsonValue = None
    applicationStatus: JsonValue = None  # noqa: N815
    sevisStatus: JsonValue = None  # noqa: N815
    approved_by: JsonValue = None
    approved_on: JsonValue = None
    program: JsonValue = None
    native_language: JsonValue = None
    english_proficiency: JsonValue = None

    def to_document(self) -> dict[str, JsonValue]:
        """Serialize only the fields that were present in the source document."""

        return self.model_dump(exclude_unset=True)


class ComprehensiveApplicationData(RootModel[dict[str, JsonValue]]):
    """The nested application record (parents, address, interview notes, ...)."""

    def to_document(self) -> dict[str, JsonValue]:
        return self.root


def as_document(value: object, *, entity_id: str | None = None) -> dict[str, object]:
    """Return ``value`` as a plain mapping, rejecting anything that is not a JSON object."""

    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise DocumentShapeError(
            f"expected an object document, got {type(value).__name__}", entity_id=entity_id
        )
    return dict(cast(Mapping[str, object], value))


def has_subdocument(document: Mapping[str, object]) -> bool:
    return document.get(COMPREHENSIVE_DATA_KEY) is not None


def parse_core_fields(
    document: Mapping[str, object], *, entity_id: str | None = None
) -> CoreProfileFields:
    try:
        return CoreProfileFields.model_validate(dict(document))
    except ValidationError as exc:
        raise DocumentShapeError(f"invalid core fields: {exc}", entity_id=entity_id) from exc


def extract_subdocument(
    document: Mapping[str, object], *, entity_id: str | None = None
) -> ComprehensiveApplicationData | None:
    """Return the nested application record, or ``None`` when the document has none."""

    raw = document.get(COMPREHENSIVE_DATA_KEY)
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise DocumentShapeError(
            f"{COMPREHENSIVE_DATA_KEY} must be an object, got {type(raw).__name__}",
            entity_id=entity_id,
        )
    try:
        return ComprehensiveApplicationData.model_validate(dict(cast(Mapping[str, object], raw)))
    except ValidationError as exc:
        raise DocumentShapeError(
            f"{COMPREHENSIVE_DATA_KEY} is not JSON-serializable: {exc}", entity_id=entity_id
        ) from exc


def split_document(
    document: Mapping[str, object], *, entity_id: str | None = None
) -> tuple[CoreProfileFields, ComprehensiveApplicationData | None]:
    """Split a profile blob into its core view and its nested application record."""

    return (
        parse_core_fields(document, entity_id=entity_id),
        extract_subdocument(document, entity_id=entity_id),
    )


def merge_back(
    core: CoreProfileFields, subdocument: ComprehensiveApplicationData | None
) -> dict[str, JsonValue]:
    """Recombine a split document (inverse of :func:`split_document` for core content)."""

    document = core.to_document()
    if subdocument is not None:
        document[COMPREHENSIVE_DATA_KEY] = subdocument.to_document()
    return document
