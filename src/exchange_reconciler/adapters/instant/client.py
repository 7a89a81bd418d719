"""Instant admin API client implementing the ``EntityStore`` port."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING, cast

import httpx
from pydantic import ValidationError

from exchange_reconciler.adapters.http_resilience import ResilientClient
from exchange_reconciler.domain.ports import StoreQueryError, StoreTransactionError

from .schema import InstantErrorPayload, InstantQueryResponse, InstantTransactResponse
from .translator import build_query, operations_to_steps, records_to_entities, split_filter

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Sequence
    from types import TracebackType

    from exchange_reconciler.config.http_resilience import ResilienceConfig
    from exchange_reconciler.config.store import StoreConfig
    from exchange_reconciler.domain.model import Entity, EntityType, Operation
    from exchange_reconciler.domain.ports import Filter

log = getLogger(__name__)

QUERY_PATH = "/admin/query"
TRANSACT_PATH = "/admin/transact"


class InstantAPIError(RuntimeError):
    """Raised when the admin API answers with an error status or an unreadable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InstantStoreClient:
    """Synchronous ``EntityStore`` over the Instant admin HTTP API.

    All calls share one event loop and one HTTP client, so the rate limit and the
    connection pool span the whole pass. Call ``close`` (or use the client as a
    context manager) when the pass is done.
    """

    def __init__(
        self,
        *,
        config: StoreConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient
        self._runner: asyncio.Runner | None = None
        self._client: ResilientClient | None = None

    def __enter__(self) -> InstantStoreClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def query(self, entity_type: EntityType, where: Filter | None = None) -> list[Entity]:
        return self._run(self._query_async(entity_type, where))

    def transact(self, operations: Sequence[Operation]) -> None:
        if not operations:
            return
        self._run(self._transact_async(operations))

    def close(self) -> None:
        if self._runner is None:
            return
        try:
            if self._client is not None:
                self._runner.run(self._client.aclose())
        finally:
            self._client = None
            self._runner.close()
            self._runner = None

    def _run[T](self, coro: Coroutine[object, object, T]) -> T:
        if self._runner is None:
            self._runner = asyncio.Runner()
        return self._runner.run(coro)

    def _http_client(self) -> ResilientClient:
        if self._client is None:
            self._client = self._client_factory(self._resilience)
        return self._client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.admin_token}",
            "App-Id": self._config.app_id,
        }

    async def _query_async(self, entity_type: EntityType, where: Filter | None) -> list[Entity]:
        server_where, local_where = split_filter(where)
        body = build_query(entity_type, server_where)
        try:
            payload = await self._post(self._http_client(), QUERY_PATH, body)
            namespace = str(entity_type)
            response = InstantQueryResponse.model_validate(
                {namespace: payload.get(namespace, [])}
            )
        except (InstantAPIError, httpx.HTTPError, ValidationError) as exc:
            raise StoreQueryError(
                f"Query for {entity_type} failed: {exc}",
                entity_type=entity_type,
                where=where,
            ) from exc

        entities = records_to_entities(entity_type, response.records(namespace), local_where)
        log.debug(
            "Instant query %s returned %s entities (server filter=%s, local filter=%s)",
            entity_type,
            len(entities),
            server_where,
            local_where,
        )
        return entities

    async def _transact_async(self, operations: Sequence[Operation]) -> None:
        entity_ids = [operation.entity_id for operation in operations]
        body: dict[str, object] = {"steps": operations_to_steps(operations)}
        try:
            payload = await self._post(self._http_client(), TRANSACT_PATH, body)
            response = InstantTransactResponse.model_validate(payload)
        except (InstantAPIError, httpx.HTTPError, ValidationError) as exc:
            raise StoreTransactionError(
                f"Transaction of {len(operations)} operations failed: {exc}",
                entity_ids=entity_ids,
            ) from exc
        log.debug("Instant transaction %s applied %s steps", response.tx_id, len(operations))

    async def _post(
        self,
        client: ResilientClient,
        path: str,
        body: dict[str, object],
    ) -> dict[str, object]:
        if self._resilience.base_url is None:
            raise InstantAPIError("Missing Instant base_url in resilience configuration")
        response = await client.post(path, json=body, headers=self._headers)
        if response.is_error:
            raise InstantAPIError(_describe_error(response), status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise InstantAPIError(
                "Unexpected non-JSON response", status_code=response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise InstantAPIError("Unexpected Instant response payload")
        payload = cast(dict[str, object], payload)
        if "message" in payload and "type" in payload:
            raise InstantAPIError(
                InstantErrorPayload.model_validate(payload).describe(response.status_code),
                status_code=response.status_code,
            )
        return payload


def _describe_error(response: httpx.Response) -> str:
    try:
        return InstantErrorPayload.model_validate(response.json()).describe(response.status_code)
    except (ValueError, ValidationError):
        return f"HTTP {response.status_code}: {response.text[:200]}"
