from functools import wraps
from django.http import JsonResponse


def role_required(*roles):
    """
    Decorator that restricts a JSON view to users holding one of ``roles``.
    Anonymous users get 401, other roles get 403. Superusers always pass.
    """
    def decorator(view_func):
        @wraps(view_func)
        def _wrapped_view(request, *args, **kwargs):
            user = request.user
            if not user.is_authenticated:
                return JsonResponse({"error": "Authentication required"}, status=401)

            if not (user.is_superuser or user.role in roles):
                return JsonResponse({"error": "You do not have access to this endpoint"}, status=403)

            return view_func(request, *args, **kwargs)

        return _wrapped_view

    return decorator
