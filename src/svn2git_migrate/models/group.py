"""Group entity models."""

from typing import Optional
from pydantic import BaseModel, Field, validator


class Group(BaseModel):
    """GitLab group model."""

    id: int = Field(..., description='Group ID')
    name: str = Field(..., description='Group name')
    path: str = Field(..., description='Group path')
    full_path: Optional[str] = Field(
        default=None, description='Full group path with parent'
    )
    visibility: Optional[str] = Field(
        default=None, description='Group visibility (private, internal, public)'
    )
    web_url: Optional[str] = Field(default=None, description='Web URL')
    parent_id: Optional[int] = Field(default=None, description='Parent group ID')

    @validator('visibility')
    def validate_visibility(cls, v):
        """Validate group visibility."""
        if v is not None:
            valid_visibility = ['private', 'internal', 'public']
            if v not in valid_visibility:
                raise ValueError(f'Visibility must be one of: {valid_visibility}')
        return v

    class Config:
        """Pydantic configuration."""

        extra = 'ignore'
