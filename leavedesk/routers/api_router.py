from fastapi import APIRouter
from leavedesk.routers import leave_requests, balances

# Routers are aggregated here; main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(leave_requests.router, tags=["Leave Requests"])
api_router.include_router(balances.router, tags=["Balances"])
