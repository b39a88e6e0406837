from fastapi import APIRouter
from utils import log

from .auctions import router as auctions_router

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(auctions_router)
