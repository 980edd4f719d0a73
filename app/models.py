from pydantic import BaseModel
from typing import Optional, List


class Place(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    rating: Optional[float] = None
    reviewCount: Optional[int] = None
    category: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    mapsUrl: str = ""


class SearchResponse(BaseModel):
    success: bool = True
    query: str
    durationMs: int
    resultsCount: int
    results: List[Place]
    totalAvailable: int
    actualFrom: int
    actualTo: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class HealthResponse(BaseModel):
    ok: bool = True
    status: str = "healthy"
