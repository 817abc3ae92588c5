"""Request correlation and body-size guard.

``RequestIdMiddleware`` gives every request an id: the client's
``X-Request-Id`` when supplied, otherwise a fresh UUIDv4. The id is set on
``request.request_id``, in ``REQUEST_ID_CTX`` for code without access to the
request (log filters, HTTP clients), and echoed in the ``X-Request-ID``
response header. Outbound calls to the payment processor forward it.

``ApiSizeLimitMiddleware`` refuses oversized bodies on ``/api/`` before any
view reads them. The webhook endpoint is under ``/api/`` too, so a processor
notification larger than the limit is answered with 413 and never verified.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))


def current_request_id() -> str:
    return REQUEST_ID_CTX.get()


class RequestIdMiddleware(MiddlewareMixin):
    """Assign a request id and return it on the response."""

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject ``/api/`` requests whose declared body exceeds ``API_MAX_BYTES``."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
