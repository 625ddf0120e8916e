# app/services/review_client.py
from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from app.schemas.patient import ChildProfile
from app.schemas.review import (
    ResponseType,
    ReviewRequest,
    ReviewStatus,
    UrgencyLevel,
    new_id,
)
from app.services.result import (
    RETRYABLE_ERRORS,
    DecodeError,
    HttpError,
    NotFoundError,
    Result,
    ReviewApiError,
    TransportError,
)

logger = logging.getLogger(__name__)

REVIEWS = "provider_review_requests"
PATIENTS = "patients"

M = TypeVar("M", bound=BaseModel)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReviewApiClient:
    """
    Thin client for the review-request collections of a PostgREST endpoint.

    Every public call returns a Result; transport, HTTP and decode problems
    never escape as exceptions. The client keeps no state between calls
    beyond its connection pool.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        backoff_factor: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("REVIEW_API_BASE", "http://127.0.0.1:54321")).rstrip("/")
        self.api_key = api_key or os.getenv("REVIEW_API_KEY")
        self.timeout = timeout if timeout is not None else float(os.getenv("REVIEW_API_TIMEOUT", "30"))
        self.backoff_factor = backoff_factor

        if not self.api_key:
            raise ReviewApiError("REVIEW_API_KEY is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": "application/json",
            # Writes echo the affected rows so callers can reconcile without a re-read
            "Prefer": "return=representation",
        }
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers=headers,
            timeout=self.timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------------------------
    # Transport
    # ---------------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Result[Any]:
        logger.debug("%s %s params=%s", method, path, params)
        try:
            res = await self._client.request(method, path, params=params, json=body)
        except httpx.DecodingError as e:
            return Result.failure(DecodeError(f"Undecodable response body: {e}"))
        except httpx.RequestError as e:
            return Result.failure(TransportError(str(e) or e.__class__.__name__))

        if res.is_error:
            return Result.failure(HttpError(res.status_code, res.reason_phrase))

        if not res.content:
            return Result.success([])
        try:
            return Result.success(res.json())
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError both land here
            return Result.failure(DecodeError(f"Invalid JSON body: {e}"))

    @staticmethod
    def _decode_rows(data: Any, model: Type[M]) -> Result[List[M]]:
        try:
            rows = TypeAdapter(List[model]).validate_python(data)  # type: ignore[valid-type]
        except ValidationError as e:
            return Result.failure(DecodeError(f"Malformed {model.__name__} payload: {e.error_count()} error(s)"))
        return Result.success(rows)

    async def _get_rows(self, path: str, params: Dict[str, str], model: Type[M]) -> Result[List[M]]:
        res = await self._request("GET", path, params=params)
        if not res.ok:
            return res
        return self._decode_rows(res.value, model)

    async def _patch(self, review_request_id: str, body: Dict[str, Any]) -> Result[List[ReviewRequest]]:
        res = await self._request("PATCH", REVIEWS, params={"id": f"eq.{review_request_id}"}, body=body)
        if not res.ok:
            return res
        return self._decode_rows(res.value, ReviewRequest)

    # ---------------------------
    # Reads
    # ---------------------------
    async def fetch_review_requests(self, status: Optional[ReviewStatus] = None) -> Result[List[ReviewRequest]]:
        """Newest first; restricted to `status` when given."""
        params = {"order": "created_at.desc"}
        if status is not None:
            params["status"] = f"eq.{ReviewStatus(status).value}"
        return await self._get_rows(REVIEWS, params, ReviewRequest)

    async def fetch_pending_reviews(self) -> Result[List[ReviewRequest]]:
        return await self.fetch_review_requests(ReviewStatus.PENDING)

    async def fetch_conversation_detail(
        self,
        conversation_id: str,
        retry_attempts: int = 3,
    ) -> Result[ReviewRequest]:
        """
        Look up one review request by conversation id.

        Transport and HTTP failures are retried up to `retry_attempts` tries
        in total. A successful response with no rows is a terminal
        NotFoundError, as is a malformed body (DecodeError).
        """
        params = {"conversation_id": f"eq.{conversation_id}", "limit": "1"}
        attempts = max(1, retry_attempts)

        last: Result[Any] = Result.failure(TransportError("no attempt made"))
        for attempt in range(attempts):
            last = await self._get_rows(REVIEWS, params, ReviewRequest)
            if last.ok:
                if not last.value:
                    return Result.failure(NotFoundError(f"Conversation {conversation_id} not found"))
                return Result.success(last.value[0])
            if not isinstance(last.error, RETRYABLE_ERRORS):
                return last
            if attempt + 1 < attempts:
                logger.warning(
                    "fetch_conversation_detail(%s) attempt %d/%d failed: %s",
                    conversation_id, attempt + 1, attempts, last.error,
                )
                sleep_s = self.backoff_factor * (2 ** attempt)
                if sleep_s > 0:
                    await asyncio.sleep(sleep_s)

        logger.warning("fetch_conversation_detail(%s) gave up after %d attempts", conversation_id, attempts)
        return last

    async def search_reviews(self, query: str) -> Result[List[ReviewRequest]]:
        """Client-side filter over the unfiltered list (no server-side search)."""
        res = await self.fetch_review_requests()
        return res.map(lambda reviews: [r for r in reviews if r.matches(query)])

    async def fetch_patients(self) -> Result[List[ChildProfile]]:
        return await self._get_rows(PATIENTS, {"order": "name.asc"}, ChildProfile)

    # ---------------------------
    # Writes
    # ---------------------------
    async def submit_provider_response(
        self,
        review_request_id: str,
        response_type: ResponseType,
        content: str,
        urgency_level: Optional[UrgencyLevel] = None,
    ) -> Result[ReviewRequest]:
        """Mark the request responded and attach the response; returns the echoed row."""
        now = utcnow_iso()
        response: Dict[str, Any] = {
            "id": new_id(),
            "response_type": ResponseType(response_type).value,
            "content": content,
            "created_at": now,
            "updated_at": now,
        }
        if urgency_level is not None:
            response["urgency_level"] = UrgencyLevel(urgency_level).value

        body = {
            "status": ReviewStatus.RESPONDED.value,
            "responded_at": now,
            "updated_at": now,
            "provider_response": response,
        }
        res = await self._patch(review_request_id, body)
        if not res.ok:
            return res
        if not res.value:
            return Result.failure(NotFoundError(f"Response not saved: review request {review_request_id} not found"))
        return Result.success(res.value[0])

    async def update_review_status(self, review_request_id: str, new_status: ReviewStatus) -> Result[None]:
        res = await self._patch(review_request_id, {"status": ReviewStatus(new_status).value})
        return res.map(lambda _: None)

    async def flag_review(self, review_request_id: str, reason: Optional[str] = None) -> Result[None]:
        body: Dict[str, Any] = {"status": ReviewStatus.FLAGGED.value}
        if reason is not None:
            body["flag_reason"] = reason
        res = await self._patch(review_request_id, body)
        return res.map(lambda _: None)
