from fastapi import APIRouter

from app.api.routes import admin, analysis, auth, payment, users, utils

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(analysis.router, prefix="/analysis", tags=["analysis"])
api_router.include_router(users.router, prefix="/user", tags=["user"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(payment.router, prefix="/payment", tags=["payment"])
api_router.include_router(utils.router)
