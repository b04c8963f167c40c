import logging
from functools import wraps

from flask import g, request

from errors import AuthenticationError, AuthorizationError
from utilities.constants import ROLE_RECRUITER, ROLE_STUDENT

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = 'X-Actor-Id'
ACTOR_ROLE_HEADER = 'X-Actor-Role'
ROLES = {ROLE_RECRUITER, ROLE_STUDENT}


def current_actor():
    """Read the (id, role) pair forwarded by the identity gateway."""
    raw_id = request.headers.get(ACTOR_ID_HEADER, '').strip()
    role = request.headers.get(ACTOR_ROLE_HEADER, '').strip().lower()
    if not raw_id or not role:
        raise AuthenticationError("Authentication required.")
    try:
        actor_id = int(raw_id)
    except ValueError:
        raise AuthenticationError("Invalid actor id.")
    if role not in ROLES:
        raise AuthenticationError("Invalid actor role.")
    return actor_id, role


def require_actor(role):
    """Route decorator: the caller must be authenticated with `role`.

    Sets `g.actor_id` and `g.actor_role` for the view.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            actor_id, actor_role = current_actor()
            if actor_role != role:
                logger.info("Actor %s (%s) refused on %s", actor_id, actor_role, request.path)
                raise AuthorizationError(f"This action requires the {role} role.")
            g.actor_id = actor_id
            g.actor_role = actor_role
            return view(*args, **kwargs)
        return wrapper
    return decorator
