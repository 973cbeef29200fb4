from fastapi import APIRouter

from assignx.api.v1.health import router as health_router
from assignx.api.v1.auth import router as auth_router
from assignx.api.v1.projects import router as projects_router
from assignx.api.v1.quotes import router as quotes_router
from assignx.api.v1.assignments import router as assignments_router
from assignx.api.v1.qc import router as qc_router
from assignx.api.v1.settlement import router as settlement_router
from assignx.api.v1.timers import router as timers_router
from assignx.api.v1.notifications import router as notifications_router
from assignx.api.v1.payouts import router as payouts_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(auth_router, tags=["auth"])
v1_router.include_router(notifications_router, tags=["notifications"])

# ------------------------------------------------------------------
# LIFECYCLE
# ------------------------------------------------------------------
v1_router.include_router(projects_router, tags=["projects"])
v1_router.include_router(quotes_router, tags=["quotes"])
v1_router.include_router(assignments_router, tags=["assignments"])
v1_router.include_router(qc_router, tags=["qc"])

# ------------------------------------------------------------------
# MONEY / TIMERS
# ------------------------------------------------------------------
v1_router.include_router(settlement_router, tags=["settlement"])
v1_router.include_router(payouts_router, tags=["payouts"])
v1_router.include_router(timers_router, tags=["timers"])
