from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from topflix.core.dependencies import get_query_service
from topflix.services.query_service import QueryService

router = APIRouter(prefix="/api", tags=["content"])

# Query parameters are validated by QueryService, not by FastAPI, so that bad
# input comes back as a 400 with the same error body on every route.

def _respond(result: Dict[str, Any]) -> Dict[str, Any]:
    if result["success"]:
        return result
    raise HTTPException(
        status_code=result["status_code"],
        detail={"error": result["error"], "details": result.get("details")},
    )

@router.get("/archive")
def get_archive(request: Request, service: QueryService = Depends(get_query_service)):
    """Quality archive: limit, offset, type, minRating, excludeRegional, orderBy"""
    return _respond(service.archive(request.query_params))

@router.get("/best")
def get_best(request: Request, service: QueryService = Depends(get_query_service)):
    """Best of all time: limit, type, minRating, minAppearances, excludeRegional"""
    return _respond(service.best(request.query_params))

@router.get("/recent")
def get_recent(request: Request, service: QueryService = Depends(get_query_service)):
    return _respond(service.recent(request.query_params))

@router.get("/hidden-gems")
def get_hidden_gems(request: Request, service: QueryService = Depends(get_query_service)):
    return _respond(service.hidden_gems(request.query_params))

@router.get("/search")
def search_content(request: Request, service: QueryService = Depends(get_query_service)):
    return _respond(service.search(request.query_params))

@router.get("/detail")
def get_detail(request: Request, service: QueryService = Depends(get_query_service)):
    """Item, appearance history and similar titles for ?id=&type="""
    return _respond(service.detail(request.query_params))

@router.get("/stats")
def get_stats(service: QueryService = Depends(get_query_service)):
    return _respond(service.stats())
