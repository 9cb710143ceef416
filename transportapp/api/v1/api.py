from fastapi import APIRouter
from transportapp.api.v1.routes.auth import router as auth_router
from transportapp.api.v1.routes.public import router as public_router
from transportapp.api.v1.routes.payments import router as payments_router
from transportapp.api.v1.routes.tickets import router as tickets_router
from transportapp.api.v1.routes.admin import router as admin_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(public_router)
api_router.include_router(payments_router)
api_router.include_router(tickets_router)
api_router.include_router(admin_router)
