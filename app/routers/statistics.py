from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.schemas import StatisticsResponse
from app.services import statistics_service

router = APIRouter(prefix="/api/v1/statistics", tags=["statistics"])

@router.get("", response_model=StatisticsResponse)
async def get_statistics(db: AsyncSession = Depends(get_db)):
    return await statistics_service.get_statistics(db)
