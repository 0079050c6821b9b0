from typing import Optional

from pydantic import BaseModel


class InterestCreate(BaseModel):
    property_id: Optional[str] = None
    message: Optional[str] = None
    seriousness_score: Optional[int] = None


class InterestUpdate(BaseModel):
    status: Optional[str] = None
    message: Optional[str] = None
    seriousness_score: Optional[int] = None
