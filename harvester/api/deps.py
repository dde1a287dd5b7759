"""FastAPI dependencies."""

from harvester.ingest.harvest_pipeline import CategoryHarvester, category_harvester


async def get_harvester() -> CategoryHarvester:
    """Dependency for the category harvester."""
    return category_harvester
