"""
Triage Infrastructure Repositories
====================================

Suggestion storage. Suggestions are ephemeral, so a process-local store is
the only implementation; losing them on restart only means the next triage
or refresh recomputes them.
"""

import threading
from typing import Dict, Optional

from supportdesk.triage.application import ISuggestionStore
from supportdesk.triage.domain import Suggestion


class InMemorySuggestionStore(ISuggestionStore):
    """Latest suggestion per ticket, bounded to `max_entries` (oldest evicted)."""

    def __init__(self, max_entries: int = 10000):
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._suggestions: Dict[str, Suggestion] = {}

    async def save(self, suggestion: Suggestion) -> None:
        with self._lock:
            self._suggestions.pop(suggestion.ticket_id, None)
            self._suggestions[suggestion.ticket_id] = suggestion
            while len(self._suggestions) > self._max_entries:
                oldest = next(iter(self._suggestions))
                del self._suggestions[oldest]

    async def get(self, ticket_id: str) -> Optional[Suggestion]:
        with self._lock:
            return self._suggestions.get(ticket_id)
