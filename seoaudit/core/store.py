"""
Audit result persistence.

AuditStore is the interface the API writes finished audits to.
InMemoryAuditStore keeps the latest result per audited URL for the life of
the process.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Annotated, Union

import structlog
from fastapi import Depends

from seoaudit.models.audit import AuditResult, QuickAuditResult

logger = structlog.get_logger(__name__)

StoredAudit = Union[AuditResult, QuickAuditResult]


class AuditStore(ABC):

    @abstractmethod
    async def save(self, result: StoredAudit) -> None:
        ...

    @abstractmethod
    async def latest(self, url: str) -> StoredAudit | None:
        """Most recently saved result for the normalized target URL, if any."""
        ...


class InMemoryAuditStore(AuditStore):

    def __init__(self):
        self._results: dict[str, StoredAudit] = {}

    async def save(self, result: StoredAudit) -> None:
        self._results[result.url] = result
        logger.debug("Audit result stored", url=result.url, overall_score=result.overall_score)

    async def latest(self, url: str) -> StoredAudit | None:
        return self._results.get(url)

    def __len__(self) -> int:
        return len(self._results)


@lru_cache()
def get_audit_store() -> AuditStore:
    """Process-wide store; override with app.dependency_overrides in tests."""
    return InMemoryAuditStore()


# Type alias for dependency injection
AuditStoreDep = Annotated[AuditStore, Depends(get_audit_store)]
