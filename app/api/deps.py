from fastapi import Request

from app.services.review_client import ReviewApiClient
from app.services.store import ReviewStore


def get_store(request: Request) -> ReviewStore:
    return request.app.state.store


def get_client(request: Request) -> ReviewApiClient:
    return request.app.state.review_client
