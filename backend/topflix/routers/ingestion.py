from fastapi import APIRouter, Depends

from topflix.core.dependencies import get_ingestion_service
from topflix.services.ingestion_service import IngestionService

router = APIRouter(prefix="/api", tags=["ingestion"])

@router.get("/top10")
async def get_top10(service: IngestionService = Depends(get_ingestion_service)):
    """This week's Netflix CZ Top 10, cached for the ISO week"""
    return await service.top10_snapshot()

@router.get("/netflix-new")
async def get_netflix_new(service: IngestionService = Depends(get_ingestion_service)):
    """Titles added to Netflix CZ in the last six months, cached per day"""
    return await service.netflix_new_snapshot()

@router.get("/newsletter-data")
async def get_newsletter_data(service: IngestionService = Depends(get_ingestion_service)):
    """Top 10 and new titles rated 70+, best first, for the weekly newsletter"""
    return await service.newsletter_data()

@router.post("/discover")
async def discover_content(
    type: str = "movie",
    pages: int = 5,
    minRating: float = 7.0,
    sortBy: str = "popularity.desc",
    service: IngestionService = Depends(get_ingestion_service),
):
    return await service.run_discover(type, pages, minRating, sortBy)
