"""
Document store boundary - durable documents with atomic multi-write batches.

The submission pipeline only relies on:
1. Client-side document id generation (ids are known before commit)
2. commit_batch() with all-or-nothing semantics
3. delete() for best-effort draft cleanup

InMemoryDocumentStore is the reference implementation used by the API
service and the tests.
"""

import copy
import uuid
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """Raised when a write, batch commit or delete fails."""
    pass


@dataclass
class BatchWrite:
    """A single document write inside a batch."""
    collection_path: str
    fields: Dict[str, Any] = field(default_factory=dict)
    document_id: Optional[str] = None


def new_document_id() -> str:
    """Generate a unique document ID."""
    return uuid.uuid4().hex[:20]


class DocumentStore(ABC):
    """Remote document database boundary."""

    def new_document_id(self) -> str:
        return new_document_id()

    @abstractmethod
    async def commit_batch(self, writes: List[BatchWrite]) -> List[str]:
        """
        Commit every write or none of them.

        Returns:
            Document IDs in write order
        """
        ...

    @abstractmethod
    async def delete(self, collection_path: str, document_id: str) -> None:
        ...

    @abstractmethod
    def get(self, collection_path: str, document_id: str) -> Optional[Dict[str, Any]]:
        ...


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary backed document store.

    Supports failure injection for tests and demos:
    - fail_next_commit: the next commit_batch raises and writes nothing
    - fail_deletes: every delete raises
    """

    def __init__(self, latency_seconds: float = 0.0):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.latency_seconds = latency_seconds
        self.commit_count = 0
        self.fail_next_commit = False
        self.fail_deletes = False

    async def commit_batch(self, writes: List[BatchWrite]) -> List[str]:
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        self.commit_count += 1

        if self.fail_next_commit:
            self.fail_next_commit = False
            raise DocumentStoreError("Simulated batch commit failure")

        # Stage everything first so a bad write leaves the store untouched
        staged = []
        for write in writes:
            if not write.collection_path or write.collection_path.strip("/") != write.collection_path:
                raise DocumentStoreError(f"Invalid collection path: {write.collection_path!r}")
            if not isinstance(write.fields, dict):
                raise DocumentStoreError(f"Fields must be a mapping in {write.collection_path}")
            doc_id = write.document_id or self.new_document_id()
            staged.append((write.collection_path, doc_id, copy.deepcopy(write.fields)))

        for collection_path, doc_id, fields in staged:
            self.collections.setdefault(collection_path, {})[doc_id] = fields

        logger.info(f"[Store] Committed batch of {len(staged)} documents")
        return [doc_id for _, doc_id, _ in staged]

    async def delete(self, collection_path: str, document_id: str) -> None:
        if self.fail_deletes:
            raise DocumentStoreError(f"Simulated delete failure for {collection_path}/{document_id}")
        self.collections.get(collection_path, {}).pop(document_id, None)

    def get(self, collection_path: str, document_id: str) -> Optional[Dict[str, Any]]:
        doc = self.collections.get(collection_path, {}).get(document_id)
        return copy.deepcopy(doc) if doc is not None else None

    def put(self, collection_path: str, document_id: str, fields: Dict[str, Any]) -> None:
        """Write a single document directly (seeding and tests)."""
        self.collections.setdefault(collection_path, {})[document_id] = copy.deepcopy(fields)

    def list_documents(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self.collections.get(collection_path, {}))

    @property
    def document_count(self) -> int:
        return sum(len(docs) for docs in self.collections.values())
