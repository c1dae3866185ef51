"""API routers."""

from fastapi import APIRouter

from taskscope.api.audit import router as audit_router
from taskscope.api.auth import router as auth_router
from taskscope.api.organizations import router as organizations_router
from taskscope.api.tasks import router as tasks_router
from taskscope.api.users import router as users_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(organizations_router)
router.include_router(tasks_router)
router.include_router(audit_router)
