"""
API routes - combined router from all domain modules.

The shared rate limiter lives here; sub-routers import it from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
limiter = Limiter(key_func=get_remote_address)
if IS_TEST_ENV:

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = no_op_limit

# Invite-code guessing is throttled on every endpoint that accepts a code
JOIN_RATE_LIMIT = os.getenv("JOIN_RATE_LIMIT", "20/minute")

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from friendleague.api.routes.leagues import router as leagues_router  # noqa: E402
from friendleague.api.routes.events import router as events_router  # noqa: E402

router = APIRouter()
router.include_router(leagues_router)
router.include_router(events_router)
