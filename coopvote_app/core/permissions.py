from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from django.http import HttpRequest, HttpResponse, JsonResponse

ELECTION_MANAGE = "core.manage_election"

P = ParamSpec("P")
R = TypeVar("R", bound=HttpResponse)


def _denied(*, status: int = 403, message: str = "Permission denied.") -> JsonResponse:
    return JsonResponse({"ok": False, "error": message, "code": "permission_denied", "retryable": False}, status=status)


def json_login_required(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
    """Decorator for JSON endpoints that need a signed-in member.

    Returns a JSON 403 instead of redirecting to a login page.
    """

    @wraps(view_func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
        request = args[0] if args else None
        if not isinstance(request, HttpRequest) or not request.user.is_authenticated:
            return _denied(message="Authentication required.")
        return view_func(*args, **kwargs)

    return wrapper


def json_permission_required(permission: str) -> Callable[[Callable[P, R]], Callable[P, HttpResponse]]:
    """Decorator for JSON endpoints that require a single Django permission."""

    def decorator(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
        @wraps(view_func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
            request = args[0] if args else None
            if not isinstance(request, HttpRequest) or not request.user.has_perm(permission):
                return _denied()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def can_manage_elections(user: object) -> bool:
    has_perm = getattr(user, "has_perm", None)
    if has_perm is None:
        return False
    return bool(has_perm(ELECTION_MANAGE))
