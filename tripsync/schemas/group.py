"""
Group-related Pydantic schemas
"""

from pydantic import BaseModel, Field

class GroupCreate(BaseModel):
    """Schema for creating a group"""
    name: str = Field(min_length=1, max_length=255)

class GroupImageUpdate(BaseModel):
    """Reference URL already produced by object storage"""
    url: str = Field(min_length=1)
