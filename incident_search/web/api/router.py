from fastapi.routing import APIRouter

from incident_search.web.api import incidents, monitoring

api_router = APIRouter()
api_router.include_router(monitoring.router)
api_router.include_router(incidents.router, prefix="/incidents", tags=["incidents"])
