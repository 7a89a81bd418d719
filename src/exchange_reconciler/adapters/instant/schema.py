"""Admin HTTP API payload schemas for the Instant document store."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, JsonValue, RootModel

log = logging.getLogger(__name__)


class InstantRecord(BaseModel):
    """One stored entity: an id plus arbitrary attributes."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str

    def attributes(self) -> dict[str, JsonValue]:
        return dict(self.model_extra or {})


class InstantQueryResponse(RootModel[dict[str, list[InstantRecord]]]):
    """``{namespace: [record, ...]}``; namespaces not asked for are ignored."""

    def records(self, namespace: str) -> list[InstantRecord]:
        return self.root.get(namespace, [])


class InstantTransactResponse(BaseModel):
    model_config = ConfigDict(extra="allow")
    _logged_extra_keys: ClassVar[set[str]] = set()

    status: str | None = None
    tx_id: int | str | None = Field(default=None, alias="tx-id")

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.debug("Instant transact response: unmodeled keys: %s", ", ".join(sorted(new_keys)))


class InstantErrorPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str | None = None
    type: str | None = None
    hint: JsonValue = None

    def describe(self, status_code: int) -> str:
        parts = [f"HTTP {status_code}"]
        if self.type:
            parts.append(self.type)
        if self.message:
            parts.append(self.message)
        text = ": ".join(parts)
        if self.hint is not None:
            text = f"{text} (hint: {self.hint})"
        return text
