"""
API v1 routes.
"""

from fastapi import APIRouter

from professorprep.api.v1 import mastery, objectives, quota

router = APIRouter()

router.include_router(objectives.router, tags=["Objectives"])
router.include_router(mastery.router, prefix="/courses/{course_id}/mastery", tags=["Mastery"])
router.include_router(
    mastery.student_router, prefix="/courses/{course_id}/students", tags=["Mastery"]
)
router.include_router(quota.router, prefix="/quota", tags=["Quota"])
