"""Remote record sources: Cosmos DB and an in-memory store for demo mode.

Documents are plain dicts with camelCase keys. A sub-collection of a record
lives in its own container named ``<collection>-<subcollection>`` and is
partitioned by the parent record id (``parentId``).
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from azure.core import MatchConditions
from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos import exceptions as cosmos_exceptions
from azure.cosmos.aio import CosmosClient

from app.core.config import Settings
from app.core.errors import CONFLICT, NETWORK, NOT_FOUND, PERMISSION, UNKNOWN, TransportError

logger = logging.getLogger(__name__)

PARENT_KEY = "parentId"
SYSTEM_KEYS = ("_rid", "_self", "_etag", "_attachments", "_ts")


class RecordSource(Protocol):
    async def get_record(self, collection: str, record_id: str) -> dict[str, Any] | None: ...

    async def list_sub_records(
        self, collection: str, record_id: str, subcollection: str
    ) -> list[dict[str, Any]]: ...

    async def update_record(self, collection: str, record_id: str, fields: dict[str, Any]) -> None: ...

    async def list_records(self, collection: str, skip: int = 0, limit: int = 50) -> list[dict[str, Any]]: ...

    async def append_sub_record(
        self, collection: str, record_id: str, subcollection: str, fields: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def update_sub_record(
        self,
        collection: str,
        record_id: str,
        subcollection: str,
        sub_record_id: str,
        fields: dict[str, Any],
    ) -> None: ...

    async def check_connection(self) -> bool: ...


def _status_kind(status_code: int | None) -> str:
    if status_code == 404:
        return NOT_FOUND
    if status_code in (401, 403):
        return PERMISSION
    if status_code in (409, 412):
        return CONFLICT
    if status_code in (408, 429, 503):
        return NETWORK
    return UNKNOWN


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except cosmos_exceptions.CosmosHttpResponseError as err:
        kind = _status_kind(err.status_code)
        raise TransportError(kind, f"{operation} failed ({err.status_code}): {err.message}") from err
    except (ServiceRequestError, ServiceResponseError) as err:
        raise TransportError(NETWORK, f"{operation} failed: network error: {err}") from err


def _strip_system_keys(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if k not in SYSTEM_KEYS}


class CosmosRecordSource:
    def __init__(self) -> None:
        self.client: CosmosClient | None = None
        self.database: Any = None
        self.initialized: bool = False
        self._containers: dict[str, Any] = {}

    async def initialize(self, settings: Settings) -> None:
        if self.initialized:
            return

        endpoint = settings.COSMOS_DB_ENDPOINT
        key = settings.COSMOS_DB_KEY

        if not endpoint or not key:
            logger.warning("Cosmos DB credentials missing — record source not initialized")
            return

        self.client = CosmosClient(endpoint, key)
        self.database = self.client.get_database_client(settings.COSMOS_DB_DATABASE)
        self.initialized = True
        logger.info("CosmosRecordSource initialized (database=%s)", settings.COSMOS_DB_DATABASE)

    async def close(self) -> None:
        if self.client:
            await self.client.close()
        self.client = None
        self.database = None
        self._containers.clear()
        self.initialized = False

    def _container(self, name: str) -> Any:
        if not self.initialized:
            raise RuntimeError("CosmosRecordSource not initialized")
        if name not in self._containers:
            self._containers[name] = self.database.get_container_client(name)
        return self._containers[name]

    def _sub_container(self, collection: str, subcollection: str) -> Any:
        return self._container(f"{collection}-{subcollection}")

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any] | None:
        container = self._container(collection)
        try:
            with _translate_errors(f"get {collection}/{record_id}"):
                item = await container.read_item(item=record_id, partition_key=record_id)
        except TransportError as err:
            if err.kind == NOT_FOUND:
                return None
            raise
        return _strip_system_keys(item)

    async def list_sub_records(
        self, collection: str, record_id: str, subcollection: str
    ) -> list[dict[str, Any]]:
        container = self._sub_container(collection, subcollection)
        query = f"SELECT * FROM c WHERE c.{PARENT_KEY} = @parent_id ORDER BY c._ts"
        params: list[dict[str, str]] = [{"name": "@parent_id", "value": record_id}]

        items: list[dict[str, Any]] = []
        with _translate_errors(f"list {collection}/{record_id}/{subcollection}"):
            async for item in container.query_items(query=query, parameters=params, partition_key=record_id):
                items.append(_strip_system_keys(item))
        return items

    async def update_record(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        # Top-level keys are replaced wholesale; the etag guards against a
        # concurrent writer between our read and replace.
        container = self._container(collection)
        with _translate_errors(f"update {collection}/{record_id}"):
            current = await container.read_item(item=record_id, partition_key=record_id)
            body = {**current, **fields, "id": record_id}
            await container.replace_item(
                item=record_id,
                body=body,
                etag=current.get("_etag"),
                match_condition=MatchConditions.IfNotModified,
            )

    async def list_records(self, collection: str, skip: int = 0, limit: int = 50) -> list[dict[str, Any]]:
        container = self._container(collection)
        query = "SELECT * FROM c OFFSET @skip LIMIT @limit"
        params: list[dict[str, Any]] = [
            {"name": "@skip", "value": skip},
            {"name": "@limit", "value": limit},
        ]

        results: list[dict[str, Any]] = []
        with _translate_errors(f"list {collection}"):
            async for item in container.query_items(query=query, parameters=params):
                results.append(_strip_system_keys(item))
        return results

    async def append_sub_record(
        self, collection: str, record_id: str, subcollection: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        container = self._sub_container(collection, subcollection)
        body = {**fields, "id": uuid.uuid4().hex, PARENT_KEY: record_id}
        with _translate_errors(f"append {collection}/{record_id}/{subcollection}"):
            created = await container.create_item(body=body)
        return _strip_system_keys(created)

    async def update_sub_record(
        self,
        collection: str,
        record_id: str,
        subcollection: str,
        sub_record_id: str,
        fields: dict[str, Any],
    ) -> None:
        container = self._sub_container(collection, subcollection)
        with _translate_errors(f"update {collection}/{record_id}/{subcollection}/{sub_record_id}"):
            current = await container.read_item(item=sub_record_id, partition_key=record_id)
            body = {**current, **fields, "id": sub_record_id, PARENT_KEY: record_id}
            await container.replace_item(
                item=sub_record_id,
                body=body,
                etag=current.get("_etag"),
                match_condition=MatchConditions.IfNotModified,
            )

    async def check_connection(self) -> bool:
        if not self.initialized:
            return False
        try:
            await self.database.read()
            return True
        except Exception:
            logger.exception("Cosmos DB connection check failed")
            return False


class InMemoryRecordSource:
    """Dict-backed record source used in demo mode.

    Every call yields to the event loop once so callers see the same
    interleaving as with a remote store.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, dict[str, Any]]] = {}
        self._sub_records: dict[tuple[str, str, str], list[dict[str, Any]]] = {}

    def add_record(self, collection: str, document: dict[str, Any], subcollections: tuple[str, ...] = ()) -> None:
        document = copy.deepcopy(document)
        record_id = document.setdefault("id", uuid.uuid4().hex)
        for name in subcollections:
            for item in document.pop(name, None) or []:
                self._sub_records.setdefault((collection, record_id, name), []).append(
                    {**item, PARENT_KEY: record_id}
                )
        self._records.setdefault(collection, {})[record_id] = document

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        document = self._records.get(collection, {}).get(record_id)
        return copy.deepcopy(document) if document is not None else None

    async def list_sub_records(
        self, collection: str, record_id: str, subcollection: str
    ) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return copy.deepcopy(self._sub_records.get((collection, record_id, subcollection), []))

    async def update_record(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        document = self._records.get(collection, {}).get(record_id)
        if document is None:
            raise TransportError(NOT_FOUND, f"update {collection}/{record_id} failed: not found")
        document.update(copy.deepcopy(fields))

    async def list_records(self, collection: str, skip: int = 0, limit: int = 50) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        documents = list(self._records.get(collection, {}).values())
        return copy.deepcopy(documents[skip : skip + limit])

    async def append_sub_record(
        self, collection: str, record_id: str, subcollection: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        if record_id not in self._records.get(collection, {}):
            raise TransportError(NOT_FOUND, f"append {collection}/{record_id} failed: not found")
        item = {**copy.deepcopy(fields), "id": uuid.uuid4().hex, PARENT_KEY: record_id}
        self._sub_records.setdefault((collection, record_id, subcollection), []).append(item)
        return copy.deepcopy(item)

    async def update_sub_record(
        self,
        collection: str,
        record_id: str,
        subcollection: str,
        sub_record_id: str,
        fields: dict[str, Any],
    ) -> None:
        await asyncio.sleep(0)
        for item in self._sub_records.get((collection, record_id, subcollection), []):
            if item.get("id") == sub_record_id:
                item.update(copy.deepcopy(fields))
                return
        raise TransportError(
            NOT_FOUND, f"update {collection}/{record_id}/{subcollection}/{sub_record_id} failed: not found"
        )

    async def check_connection(self) -> bool:
        return True


cosmos_source = CosmosRecordSource()
