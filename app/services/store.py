# app/services/store.py
from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Coroutine,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
)

from app.schemas.review import ResponseType, ReviewRequest, ReviewStatus, UrgencyLevel
from app.services.result import Result
from app.services.review_client import ReviewApiClient

logger = logging.getLogger(__name__)

Listener = Callable[["StoreState"], None]


def _empty_cache() -> Mapping[str, ReviewRequest]:
    return MappingProxyType({})


@dataclass(frozen=True)
class StoreState:
    """Immutable snapshot of everything the presentation layer reads."""

    review_requests: Tuple[ReviewRequest, ...] = ()
    selected_status: Optional[ReviewStatus] = None
    conversation_details: Mapping[str, ReviewRequest] = field(default_factory=_empty_cache)
    is_loading: bool = False
    error: Optional[str] = None
    badge_count: int = 0
    search_query: str = ""


def pending_count(reviews: Tuple[ReviewRequest, ...]) -> int:
    return sum(1 for r in reviews if r.status is ReviewStatus.PENDING)


class ReviewStore:
    """
    Single owner of client-visible review state.

    Every mutation builds a new StoreState and swaps it in whole, so a reader
    holding `store.state` always sees a consistent snapshot. The detail
    cache populates once per conversation id and is only ever replaced by
    submit reconciliation or explicit eviction.

    Usage:
        store = ReviewStore(client)
        store.start()                       # initial load + periodic refresh
        await store.load_conversation_detail("conv-1")
        await store.aclose()                # stop timer, cancel in-flight work

    Overlapping list loads are last-resolved-wins unless `sequence_loads`
    is set, in which case only the response of the newest request applies.
    """

    def __init__(
        self,
        client: ReviewApiClient,
        *,
        refresh_interval: Optional[float] = None,
        sequence_loads: bool = False,
    ) -> None:
        self._client = client
        self.refresh_interval = (
            refresh_interval
            if refresh_interval is not None
            else float(os.getenv("REVIEW_REFRESH_SECONDS", "60"))
        )
        self.sequence_loads = sequence_loads

        self._state = StoreState()
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._refresh_task: Optional[asyncio.Task[Any]] = None
        self._load_seq = 0
        self._closed = False

    # ---------------------------
    # State
    # ---------------------------
    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for new snapshots; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, **changes: Any) -> None:
        if self._closed:
            return
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("store listener failed")

    def _fail(self, res: Result[Any], fallback: str) -> None:
        message = str(res.error) if res.error is not None else ""
        logger.warning("%s: %s", fallback, message or "no detail")
        self._commit(error=message or fallback)

    @asynccontextmanager
    async def _loading(self) -> AsyncIterator[None]:
        """Hold the loading flag for the duration of a remote call."""
        self._commit(is_loading=True)
        try:
            yield
        finally:
            self._commit(is_loading=False)

    # ---------------------------
    # Task scope
    # ---------------------------
    def launch(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run `coro` as a task owned by the store; cancelled on aclose()."""
        if self._closed:
            coro.close()
            raise RuntimeError("store is closed")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def start(self) -> None:
        """Kick off the first load and the periodic refresh. Needs a running loop."""
        if self._refresh_task is not None:
            return
        self.launch(self.load_review_requests())
        self._refresh_task = self.launch(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            # Not awaited: a refresh may overlap a load already in flight
            self.launch(self.load_review_requests())

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_task = None
        self._listeners.clear()

    # ---------------------------
    # List
    # ---------------------------
    async def load_review_requests(self) -> None:
        """Replace the list with a fresh fetch under the current status filter."""
        self._load_seq += 1
        seq = self._load_seq
        self._commit(error=None)

        async with self._loading():
            res = await self._client.fetch_review_requests(self._state.selected_status)
            if self.sequence_loads and seq != self._load_seq:
                logger.debug("dropping stale list response #%d (latest #%d)", seq, self._load_seq)
                return
            if res.ok:
                reviews = tuple(res.value or ())
                logger.info("loaded %d review requests (filter=%s)", len(reviews), self._state.selected_status)
                self._commit(review_requests=reviews, badge_count=pending_count(reviews))
            else:
                self._fail(res, "Failed to load review requests")

    async def set_status_filter(self, status: Optional[ReviewStatus]) -> None:
        self._commit(selected_status=None if status is None else ReviewStatus(status))
        await self.load_review_requests()

    async def search_conversations(self, query: str) -> None:
        """
        Empty query restores the filtered list. Otherwise the list is replaced
        by search results, which ignore the status filter.
        """
        self._commit(search_query=query)
        if not query:
            await self.load_review_requests()
            return

        self._load_seq += 1
        seq = self._load_seq
        async with self._loading():
            res = await self._client.search_reviews(query)
            if self.sequence_loads and seq != self._load_seq:
                return
            if res.ok:
                self._commit(review_requests=tuple(res.value or ()))
            else:
                self._fail(res, "Search failed")

    def clear_error(self) -> None:
        self._commit(error=None)

    # ---------------------------
    # Detail cache
    # ---------------------------
    async def load_conversation_detail(self, conversation_id: str) -> None:
        """Populate the cache slot for `conversation_id` once; cached ids are never refetched."""
        if conversation_id in self._state.conversation_details:
            return

        async with self._loading():
            res = await self._client.fetch_conversation_detail(conversation_id)
            if res.ok:
                self._commit(conversation_details=self._with_detail(conversation_id, res.value))
            else:
                self._fail(res, "Failed to load conversation")

    def evict_conversation_detail(self, conversation_id: str) -> None:
        cache = self._state.conversation_details
        if conversation_id not in cache:
            return
        remaining = {k: v for k, v in cache.items() if k != conversation_id}
        self._commit(conversation_details=MappingProxyType(remaining))

    def _with_detail(self, conversation_id: str, detail: ReviewRequest) -> Mapping[str, ReviewRequest]:
        return MappingProxyType({**self._state.conversation_details, conversation_id: detail})

    def _conversation_of(self, review_request_id: str) -> Optional[str]:
        for r in self._state.review_requests:
            if r.id == review_request_id:
                return r.conversation_id
        return None

    # ---------------------------
    # Writes
    # ---------------------------
    async def submit_provider_response(
        self,
        review_request_id: str,
        response_type: ResponseType,
        content: str,
        urgency_level: Optional[UrgencyLevel] = None,
    ) -> None:
        async with self._loading():
            res = await self._client.submit_provider_response(
                review_request_id, response_type, content, urgency_level
            )
            if not res.ok:
                self._fail(res, "Failed to submit response")
                return

            updated: ReviewRequest = res.value
            reviews = tuple(updated if r.id == review_request_id else r for r in self._state.review_requests)
            logger.info("provider response saved for review request %s", review_request_id)
            self._commit(
                conversation_details=self._with_detail(updated.conversation_id, updated),
                review_requests=reviews,
                badge_count=pending_count(reviews),
                error=None,
            )

    async def flag_review(self, review_request_id: str, reason: Optional[str] = None) -> None:
        await self._write_then_reload(
            review_request_id,
            lambda: self._client.flag_review(review_request_id, reason),
            "Failed to flag review",
        )

    async def update_review_status(self, review_request_id: str, status: ReviewStatus) -> None:
        await self._write_then_reload(
            review_request_id,
            lambda: self._client.update_review_status(review_request_id, status),
            "Failed to update status",
        )

    async def _write_then_reload(
        self,
        review_request_id: str,
        write: Callable[[], Awaitable[Result[None]]],
        fallback: str,
    ) -> None:
        async with self._loading():
            res = await write()
        if not res.ok:
            self._fail(res, fallback)
            return

        conversation_id = self._conversation_of(review_request_id)
        if conversation_id is not None:
            self.evict_conversation_detail(conversation_id)
        await self.load_review_requests()
