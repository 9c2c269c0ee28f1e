"""API v1 router aggregator."""

from fastapi import APIRouter

from doccompare.api.v1 import compare

router = APIRouter(prefix="/api/v1")
router.include_router(compare.router)
