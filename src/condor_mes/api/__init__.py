"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health and auth are open at the router level (auth routes pick
their own dependencies). Shop-floor writes require a valid, non-revoked
bearer token, applied once with include_router(dependencies=...).
"""

from fastapi import APIRouter, Depends

from condor_mes.api.alerts import router as alerts_router
from condor_mes.api.auth import router as auth_router
from condor_mes.api.health import router as health_router
from condor_mes.api.sensor_data import router as sensor_data_router
from condor_mes.api.users import router as users_router
from condor_mes.api.work_orders import router as work_orders_router
from condor_mes.auth.dependencies import get_current_user

_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes
api_router.include_router(users_router, tags=["users"], dependencies=_auth)
api_router.include_router(sensor_data_router, tags=["sensor-data"], dependencies=_auth)
api_router.include_router(work_orders_router, tags=["work-orders"], dependencies=_auth)
api_router.include_router(alerts_router, tags=["alerts"], dependencies=_auth)
