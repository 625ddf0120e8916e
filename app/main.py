import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from app.api import patients, reviews
from app.services.review_client import ReviewApiClient
from app.services.store import ReviewStore

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def create_app(
    client: Optional[ReviewApiClient] = None,
    *,
    refresh_interval: Optional[float] = None,
    sequence_loads: bool = False,
) -> FastAPI:
    """Build the API; the lifespan owns the review client and the store."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        review_client = client or ReviewApiClient()
        store = ReviewStore(review_client, refresh_interval=refresh_interval, sequence_loads=sequence_loads)
        app.state.review_client = review_client
        app.state.store = store
        store.start()
        try:
            yield
        finally:
            await store.aclose()
            if client is None:
                await review_client.aclose()

    app = FastAPI(title="Provider Review API", lifespan=lifespan)
    app.include_router(reviews.router)
    app.include_router(patients.router)
    return app


app = create_app()
