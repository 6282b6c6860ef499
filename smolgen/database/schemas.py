"""
Smolgen Pydantic Schemas
Validated payloads written to the relational store
"""

from pydantic import BaseModel, Field, ConfigDict


# Base configuration for all schemas
class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        coerce_numbers_to_str=True
    )


class SmolCreate(BaseSchema):
    """Schema for the row written when a run completes"""
    id: str = Field(..., min_length=1, description="Workflow run id")
    title: str = Field(..., min_length=1, description="Song title from the lyrics")
    song_1: str = Field(..., min_length=1, description="music_id in the first slot")
    song_2: str = Field(..., min_length=1, description="music_id in the second slot")
    address: str = Field(..., min_length=1, description="Originating account address")
    public: bool = Field(default=True)
    instrumental: bool = Field(default=False)


class PlaylistEntry(BaseSchema):
    """Schema for adding a smol to a playlist"""
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
