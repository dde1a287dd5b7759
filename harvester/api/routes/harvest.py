"""Category harvest API endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from harvester.api.deps import get_harvester
from harvester.ingest.harvest_pipeline import CategoryHarvester

logger = logging.getLogger(__name__)

router = APIRouter(tags=["harvest"])


class HarvestRequest(BaseModel):
    """Request model for a category harvest."""
    url: Optional[str] = None
    pincode: Optional[str] = None
    target_count: Optional[int] = Field(default=None, ge=1)


@router.post("/instamartcategorywrapper")
async def harvest_category(
    request: HarvestRequest,
    harvester: CategoryHarvester = Depends(get_harvester),
):
    """Harvest a category listing and return the ranked product list."""
    if not request.url:
        return JSONResponse(status_code=400, content={"error": "URL is required"})

    try:
        result = await harvester.harvest(
            request.url,
            pincode=request.pincode,
            target_count=request.target_count,
        )
    except Exception as e:
        logger.exception(f"Harvest failed for {request.url}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return result.to_dict()
