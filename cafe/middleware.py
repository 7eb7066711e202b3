import contextvars
import logging
import uuid

logger = logging.getLogger(__name__)

_request_id = contextvars.ContextVar("request_id", default="-")


def current_request_id():
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """
    Stamp every log record with the id of the request being served.

    Django logs 4xx/5xx responses to `django.request` after the middleware
    chain has returned, with the request passed as `extra`; the id stored on
    that request wins over the context variable, which is reset by then.
    """

    def filter(self, record):
        request = getattr(record, "request", None)
        record.request_id = getattr(request, "request_id", None) or current_request_id()
        return True


class RequestResponseLoggingMiddleware:
    """
    Middleware that tags each request with a request id and logs the
    request method, path and body together with the response status.

    An incoming X-Request-ID header is reused so ids line up with the
    gateway's logs; the id is echoed back in the response.
    """

    header = "HTTP_X_REQUEST_ID"

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.META.get(self.header) or uuid.uuid4().hex
        request.request_id = request_id
        token = _request_id.set(request_id)

        try:
            logger.info(
                "API Request: %s %s Body: %s",
                request.method,
                request.get_full_path(),
                self._describe_body(request),
            )

            response = self.get_response(request)

            logger.info(
                "API Response: %s %s Status: %s",
                request.method,
                request.get_full_path(),
                response.status_code,
            )
            response["X-Request-ID"] = request_id
            return response
        finally:
            _request_id.reset(token)

    @staticmethod
    def _describe_body(request):
        content_type = request.META.get("CONTENT_TYPE", "")

        # Skip logging body for file uploads
        if "multipart/form-data" in content_type:
            return "<Multipart form data - body not logged>"

        if request.method not in ("POST", "PUT", "PATCH") or not request.body:
            return ""

        try:
            return request.body.decode("utf-8")
        except UnicodeDecodeError:
            return "<Could not decode body>"
