# api/v1/schemas/reco.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from app.domain.models.activity import ActivityType


class ActivityIn(BaseModel):
    user_id: str = Field(min_length=1)
    product_id: str = Field(min_length=1)
    activity_type: ActivityType
    metadata: Optional[Dict[str, Any]] = None


class PreferencesIn(BaseModel):
    categories: List[str] = Field(default_factory=list)


class GenerateIn(BaseModel):
    preferences: Optional[PreferencesIn] = None
