"""Render models returned by the page controllers."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from api.src.models.image import ImageListing, PaginatedImages


class PageLinks(BaseModel):
    """Links to the neighbouring pages of a paginated view."""
    previous_page_url: Optional[str] = None
    next_page_url: Optional[str] = None


class ProfilePage(BaseModel):
    credit_balance: int
    image_count: int
    paginated_images: PaginatedImages
    page: int
    links: PageLinks = Field(default_factory=PageLinks)


class GalleryPage(ImageListing):
    """Gallery listing with navigation links for the current query."""
    links: PageLinks = Field(default_factory=PageLinks)
    clear_search_url: Optional[str] = None


class AddTransformationPage(BaseModel):
    transformation_type: str
    title: str
    subtitle: str
    transformation_config: Dict[str, Any]
    owner_id: str
    credit_balance: int


class ErrorResponse(BaseModel):
    """Error response schema."""
    detail: str
    error_code: Optional[str] = None
