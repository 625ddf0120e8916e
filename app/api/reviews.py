from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List

from app.api.deps import get_store
from app.schemas.api import BadgeView, FilterIn, FlagIn, ResponseIn, StatusIn, StatusTabView, StoreStateView
from app.schemas.review import STATUS_TABS, ReviewRequest
from app.services.store import ReviewStore, StoreState

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


def _view(state: StoreState) -> StoreStateView:
    return StoreStateView(
        review_requests=list(state.review_requests),
        selected_status=state.selected_status,
        cached_conversations=sorted(state.conversation_details),
        is_loading=state.is_loading,
        error=state.error,
        badge_count=state.badge_count,
        search_query=state.search_query,
        outcome_labels={r.triage_outcome.value: r.triage_outcome.label for r in state.review_requests},
    )


@router.get("", response_model=StoreStateView)
async def get_state(store: ReviewStore = Depends(get_store)):
    return _view(store.state)


@router.get("/badge", response_model=BadgeView)
async def get_badge(store: ReviewStore = Depends(get_store)):
    return BadgeView(badge_count=store.state.badge_count)


@router.get("/tabs", response_model=List[StatusTabView])
async def get_tabs():
    """List-screen tabs in display order; `status` is the filter each tab applies."""
    return [StatusTabView(title=title, status=status) for title, status in STATUS_TABS]


@router.post("/refresh", response_model=StoreStateView)
async def refresh(store: ReviewStore = Depends(get_store)):
    await store.load_review_requests()
    return _view(store.state)


@router.put("/filter", response_model=StoreStateView)
async def set_filter(payload: FilterIn, store: ReviewStore = Depends(get_store)):
    await store.set_status_filter(payload.status)
    return _view(store.state)


@router.get("/search", response_model=StoreStateView)
async def search(q: str = Query(""), store: ReviewStore = Depends(get_store)):
    await store.search_conversations(q)
    return _view(store.state)


@router.get("/conversations/{conversation_id}", response_model=ReviewRequest)
async def get_conversation(conversation_id: str, store: ReviewStore = Depends(get_store)):
    """Cache-first detail; 404 while the cache slot stays empty."""
    await store.load_conversation_detail(conversation_id)
    detail = store.state.conversation_details.get(conversation_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=store.state.error or "Conversation not found")
    return detail


@router.post("/{review_request_id}/response", response_model=StoreStateView)
async def respond(review_request_id: str, payload: ResponseIn, store: ReviewStore = Depends(get_store)):
    await store.submit_provider_response(
        review_request_id,
        payload.response_type,
        payload.content,
        payload.urgency_level,
    )
    return _view(store.state)


@router.post("/{review_request_id}/flag", response_model=StoreStateView)
async def flag(review_request_id: str, payload: FlagIn, store: ReviewStore = Depends(get_store)):
    await store.flag_review(review_request_id, payload.reason)
    return _view(store.state)


@router.put("/{review_request_id}/status", response_model=StoreStateView)
async def update_status(review_request_id: str, payload: StatusIn, store: ReviewStore = Depends(get_store)):
    await store.update_review_status(review_request_id, payload.status)
    return _view(store.state)


@router.delete("/error", response_model=StoreStateView)
async def clear_error(store: ReviewStore = Depends(get_store)):
    store.clear_error()
    return _view(store.state)
