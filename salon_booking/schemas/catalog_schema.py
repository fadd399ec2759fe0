"""Service catalog data models."""

from typing import Optional

from pydantic import BaseModel, Field


class Service(BaseModel):
    """A bookable salon service."""
    id: str
    name: str
    duration_minutes: int = Field(gt=0)
    base_price: float = Field(ge=0)
    description: Optional[str] = None
    is_active: bool = True


class AddOn(BaseModel):
    """An optional extra that lengthens or prices up a service."""
    id: str
    name: str
    price: float = Field(default=0, ge=0)
    additional_time_minutes: int = Field(default=0, ge=0)
