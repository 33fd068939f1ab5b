"""
This module defines the API router for version 1 (v1) of the API.
"""
from fastapi import APIRouter

from support.constants import IS_PRODUCTION
from views.callback_views import CallbackViewsManager
from views.file_views import FileViewsManager
from views.job_views import JobViewsManager


router = APIRouter(
    prefix="/v1",
    tags=["v1"],
)

# Register the versioned endpoints on this router; diagnostics stay out of production
job_views_manager = JobViewsManager(router, expose_diagnostics=not IS_PRODUCTION)
callback_views_manager = CallbackViewsManager(router)
file_views_manager = FileViewsManager(router, expose_diagnostics=not IS_PRODUCTION)
