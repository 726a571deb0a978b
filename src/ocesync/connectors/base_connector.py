"""Base interfaces for content connectors.

All connectors should implement asynchronous methods to fetch content and
perform synchronization workflows.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class BaseConnector(ABC):
    """Abstract connector interface.

    Implementations should be safe to construct without side effects and should
    not perform network calls until methods are invoked.
    """

    @abstractmethod
    async def fetch_content(self) -> List[Dict[str, Any]]:
        """Fetch and return the raw item records from the source."""
        raise NotImplementedError

    @abstractmethod
    async def sync(self) -> Any:
        """Perform a synchronization run (fetch + normalize + materialize)."""
        raise NotImplementedError
