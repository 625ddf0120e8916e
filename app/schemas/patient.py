from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ChildProfile(BaseModel):
    """Row of the `patients` collection (read-only here)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str = ""
    date_of_birth: str = ""
    age: int = 0
    medications: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    past_medical_history: List[str] = Field(default_factory=list)
    clinical_notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
