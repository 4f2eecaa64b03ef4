"""Central router that includes all sub-routers."""

from fastapi import APIRouter

from resumeops.api.orders import router as orders_router
from resumeops.api.payments import router as payments_router
from resumeops.api.revisions import router as revisions_router

api_router = APIRouter()
api_router.include_router(orders_router)
api_router.include_router(payments_router)
api_router.include_router(revisions_router)
