import json
import logging
from functools import wraps

from django.http import JsonResponse

from students.exceptions import TransitionError, ValidationError

logger = logging.getLogger(__name__)


def transition_endpoint(view_func):
    """Decorator turning engine errors into JSON error responses."""
    @wraps(view_func)
    def _wrapped_view(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except TransitionError as e:
            logger.info(f"{view_func.__name__} refused: {e.code} - {e.message}")
            return JsonResponse(e.to_dict(), status=e.status_code)
    return _wrapped_view


def parse_payload(request):
    """Read a JSON body, falling back to form data."""
    if request.content_type == 'application/json':
        try:
            payload = json.loads(request.body or b'{}')
        except ValueError:
            raise ValidationError("Request body is not valid JSON.")
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object.")
        return payload
    return request.POST.dict()


def get_id(payload, field, required=True):
    """Return an integer id from the payload, or None when optional and absent."""
    value = payload.get(field)
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required.")
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.")
