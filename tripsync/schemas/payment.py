"""
Payment schemas
"""

from datetime import date as date_type
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

def _member_ids(value: Any) -> Any:
    # share lists arrive either as ids or as {"user_id": .., "nickname": ..}
    if value is None:
        return None
    return [item.get("user_id") if isinstance(item, dict) else item for item in value]

class PaymentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trip_id: int = Field(alias="tripId")
    category: str
    description: str = ""
    price: int = Field(ge=0)
    pay: int
    group: Optional[List[int]] = None
    date: Optional[date_type] = None

    @field_validator("group", mode="before")
    @classmethod
    def normalize_group(cls, value):
        return _member_ids(value)

class PaymentUpdate(BaseModel):
    """Only the fields that are set are applied"""
    model_config = ConfigDict(populate_by_name=True)

    payment_id: int = Field(alias="paymentId")
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    pay: Optional[int] = None
    date: Optional[date_type] = None
    group: Optional[List[int]] = None
    version: Optional[int] = None

    @field_validator("group", mode="before")
    @classmethod
    def normalize_group(cls, value):
        return _member_ids(value)

class PaymentSaveRequest(BaseModel):
    payments: List[PaymentCreate] = Field(min_length=1)

class PaymentUpdateRequest(BaseModel):
    payments: List[PaymentUpdate] = Field(min_length=1)
