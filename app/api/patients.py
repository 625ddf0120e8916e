from fastapi import APIRouter, Depends, HTTPException
from typing import List

from app.api.deps import get_client
from app.schemas.patient import ChildProfile
from app.services.review_client import ReviewApiClient

router = APIRouter(prefix="/api/patients", tags=["patients"])


@router.get("", response_model=List[ChildProfile])
async def list_patients(client: ReviewApiClient = Depends(get_client)):
    res = await client.fetch_patients()
    if not res.ok:
        raise HTTPException(status_code=502, detail=str(res.error))
    return res.value
