"""Core request middleware."""
import re
import uuid

from .logging import reset_correlation_id, set_correlation_id

REQUEST_ID_HEADER = 'X-Request-ID'
_VALID_REQUEST_ID = re.compile(r'^[A-Za-z0-9._-]{1,100}$')


class CorrelationIdMiddleware:
    """
    Tag every request with a correlation id.

    A well-formed incoming ``X-Request-ID`` is reused, otherwise a UUID is
    generated. The id is available as ``request.request_id``, on every log
    record and in the response header.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        incoming = request.META.get('HTTP_X_REQUEST_ID', '')
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else uuid.uuid4().hex
        request.request_id = request_id
        token = set_correlation_id(request_id)
        try:
            response = self.get_response(request)
        finally:
            reset_correlation_id(token)
        response[REQUEST_ID_HEADER] = request_id
        return response
