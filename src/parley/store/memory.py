"""Process-local document store."""

import copy
from typing import Any

from parley.store.base import BaseDocumentStore


class InMemoryStore(BaseDocumentStore):
    """Dictionary-backed store for tests and single-process deployments."""

    def __init__(self) -> None:
        super().__init__()
        self._docs: dict[str, dict[str, tuple[str | None, dict[str, Any]]]] = {}

    async def _put(self, kind: str, doc_id: str, data: dict[str, Any], scope: str | None) -> None:
        self._docs.setdefault(kind, {})[doc_id] = (scope, copy.deepcopy(data))

    async def _get(self, kind: str, doc_id: str) -> dict[str, Any] | None:
        entry = self._docs.get(kind, {}).get(doc_id)
        return copy.deepcopy(entry[1]) if entry else None

    async def _delete(self, kind: str, doc_id: str) -> None:
        self._docs.get(kind, {}).pop(doc_id, None)

    async def _scan(self, kind: str, scope: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(data)
            for doc_scope, data in self._docs.get(kind, {}).values()
            if scope is None or doc_scope == scope
        ]
