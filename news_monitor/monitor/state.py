"""Per-source fetch state tracker.

Holds exactly one FetchState per source that has been fetched at least
once. Each transition stores a new FetchState object, so a state handed
to a caller is never mutated afterwards.
"""

import dataclasses
from datetime import datetime, timezone

from news_monitor.ingestion.schemas import Article
from news_monitor.monitor.events import FETCH_STATE_CHANGED, EventBus
from news_monitor.monitor.schemas import FetchState


class FetchStateTracker:
    """Idle -> Loading -> {Ready, Failed} state machine per source id."""

    def __init__(self, events: EventBus | None = None) -> None:
        self._events = events or EventBus()
        self._states: dict[str, FetchState] = {}

    def get(self, source_id: str) -> FetchState:
        """Current state, or a fresh idle state if the source was never fetched."""
        return self._states.get(source_id) or FetchState()

    def has_state(self, source_id: str) -> bool:
        return source_id in self._states

    def is_loading(self, source_id: str) -> bool:
        state = self._states.get(source_id)
        return state is not None and state.loading

    def snapshot(self) -> dict[str, FetchState]:
        return dict(self._states)

    def failed_count(self) -> int:
        return sum(1 for s in self._states.values() if s.status == "failed")

    def mark_loading(self, source_id: str) -> FetchState:
        """Enter Loading, keeping the previous articles visible."""
        previous = self.get(source_id)
        return self._set(
            source_id,
            dataclasses.replace(previous, loading=True, error=None),
        )

    def mark_success(self, source_id: str, articles: list[Article]) -> FetchState:
        """Enter Ready with a new article list."""
        return self._set(
            source_id,
            FetchState(
                loading=False,
                error=None,
                articles=list(articles),
                last_fetched=datetime.now(timezone.utc),
            ),
        )

    def mark_failure(self, source_id: str, error: str) -> FetchState:
        """Enter Failed; articles and last_fetched stay as they were."""
        previous = self.get(source_id)
        return self._set(
            source_id,
            dataclasses.replace(previous, loading=False, error=error),
        )

    def remove(self, source_id: str) -> None:
        if self._states.pop(source_id, None) is not None:
            self._events.publish(FETCH_STATE_CHANGED, source_id=source_id, status="removed")

    def clear(self) -> None:
        self._states.clear()

    def _set(self, source_id: str, state: FetchState) -> FetchState:
        self._states[source_id] = state
        self._events.publish(FETCH_STATE_CHANGED, source_id=source_id, status=state.status)
        return state
