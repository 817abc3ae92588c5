"""Logging filter that stamps records with the current request id."""

from logging import Filter, LogRecord

from .middleware import current_request_id


class RequestIdFilter(Filter):
    """Set ``record.request_id`` from the request context ("-" outside a request).

    Records that already carry a ``request_id`` (passed through ``extra``)
    keep it.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = current_request_id()
        return True
