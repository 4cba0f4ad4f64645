"""
Image record models.

``ImageCreate`` and ``ImageUpdate`` are the exact field sets accepted by
the add and update operations. ``ImageRecord`` is what the repository
returns, with ``author`` either the owner id or, for reads, the owner's
summary.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from api.src.models.account import AuthorSummary


class ImageCreate(BaseModel):
    """Fields of a newly stored image."""
    title: str = Field(..., min_length=1, max_length=200)
    transformation_type: str = Field(..., min_length=1)
    public_id: str = Field(..., min_length=1, description="Remote storage identifier")
    secure_url: str = Field(..., min_length=1)
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    config: Dict[str, Any] = Field(default_factory=dict, description="Transformation parameters")
    transformation_url: Optional[str] = None
    aspect_ratio: Optional[str] = None
    color: Optional[str] = None
    prompt: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "title": "Beach",
                "transformation_type": "restore",
                "public_id": "aniket_pixelyze/beach",
                "secure_url": "https://res.cloudinary.com/demo/image/upload/beach.jpg",
                "width": 1200,
                "height": 800,
                "config": {"restore": True}
            }
        }
    }


class ImageUpdate(ImageCreate):
    """Full replacement of an existing image's mutable fields."""
    id: str = Field(..., min_length=1)


class ImageRecord(BaseModel):
    """Stored image as returned to callers."""
    id: str
    author: Union[AuthorSummary, str]
    title: str
    transformation_type: str
    public_id: str
    secure_url: str
    width: Optional[int] = None
    height: Optional[int] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    transformation_url: Optional[str] = None
    aspect_ratio: Optional[str] = None
    color: Optional[str] = None
    prompt: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaginatedImages(BaseModel):
    """One page of images plus the page count."""
    data: List[ImageRecord]
    total_pages: int = Field(..., ge=0)


class ImageListing(PaginatedImages):
    """Public gallery page with the total number of saved images."""
    saved_images: int = Field(..., ge=0)
