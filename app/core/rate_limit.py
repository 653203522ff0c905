"""slowapi limiter for the session step-save endpoints."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings


def step_save_key(request: Request) -> str:
    """Bucket step saves per teacher and session report.

    ``request.state.user_id`` is set by ``get_current_user``, which has run
    by the time the limit is checked. Anonymous calls never reach a save,
    but are bucketed by address so the key is always defined.
    """
    report_id = request.path_params.get("report_id", "-")
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"step-save:user:{user_id}:session:{report_id}"
    return f"step-save:ip:{get_remote_address(request)}:session:{report_id}"


limiter = Limiter(key_func=get_remote_address, default_limits=[], storage_uri="memory://")

# Shared by every PUT under /teaching-sessions/{report_id}/
limit_step_save = limiter.limit(settings.step_save_rate_limit, key_func=step_save_key)
