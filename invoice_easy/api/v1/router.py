"""API v1 router aggregator.

URL structure with /api/v1 prefix. All v1 endpoint routers are included
here.
"""

from fastapi import APIRouter

from invoice_easy.api.v1 import auth_oauth, auth_session

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth_oauth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_session.router, prefix=_AUTH_PREFIX, tags=["auth"])
