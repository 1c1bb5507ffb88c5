"""Reactive hooks fired by the document store after a write commits."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ChangeEvent:
    """Before/after snapshots of a single committed document write."""

    collection: str
    doc_id: str
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None

    @property
    def created(self) -> bool:
        return self.before is None and self.after is not None

    @property
    def deleted(self) -> bool:
        return self.before is not None and self.after is None


Handler = Callable[[ChangeEvent], Any]


class TriggerRegistry:
    """Maps collections to ``on_create`` and ``on_write`` handlers."""

    def __init__(self) -> None:
        self._on_create: dict[str, list[Handler]] = defaultdict(list)
        self._on_write: dict[str, list[Handler]] = defaultdict(list)

    def on_create(self, collection: str, handler: Handler) -> None:
        self._on_create[collection].append(handler)

    def on_write(self, collection: str, handler: Handler) -> None:
        """Register *handler* for every create, update and delete."""
        self._on_write[collection].append(handler)

    def dispatch(self, events: list[ChangeEvent]) -> None:
        """Run matching handlers for each event.

        A failing handler is logged and skipped; the write that fired it
        has already committed and the writer is never told.
        """
        for event in events:
            handlers = list(self._on_write[event.collection])
            if event.created:
                handlers = list(self._on_create[event.collection]) + handlers
            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    logger.exception(
                        "Trigger %s failed for %s/%s",
                        getattr(handler, "__qualname__", handler),
                        event.collection,
                        event.doc_id,
                    )
