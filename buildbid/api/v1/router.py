from fastapi import APIRouter

from buildbid.api.v1.admin import router as admin_router
from buildbid.api.v1.auth import router as auth_router
from buildbid.api.v1.messages import router as messages_router
from buildbid.api.v1.payments import router as payments_router
from buildbid.api.v1.projects import router as projects_router
from buildbid.api.v1.proposals import router as proposals_router

v1_router = APIRouter()

v1_router.include_router(auth_router)
v1_router.include_router(projects_router)
v1_router.include_router(proposals_router)
v1_router.include_router(payments_router)
v1_router.include_router(messages_router)
v1_router.include_router(admin_router)
