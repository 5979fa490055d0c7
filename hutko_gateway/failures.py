import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from hutko_gateway.models import CallbackFailure

MAX_RAW_BODY = 65536


@dataclass
class RequestMeta:
    method: str = "N/A"
    uri: str = "N/A"
    client_host: str = "unknown"


class FailureRecorder:
    """Keeps a forensic trail of rejected callbacks.

    ``log`` is immediate; ``store`` writes the database row and is meant to run
    after the response has gone out. Neither raises.
    """

    def __init__(self, session_factory, logger: Optional[logging.Logger] = None):
        self._session_factory = session_factory
        self._logger = logger or logging.getLogger(__name__)

    def record(
        self,
        error: Exception,
        payload: Optional[Mapping[str, Any]] = None,
        raw_body: Optional[bytes] = None,
        request: Optional[RequestMeta] = None,
    ) -> None:
        self.log(error, payload, request)
        self.store(error, payload, raw_body, request)

    def log(
        self,
        error: Exception,
        payload: Optional[Mapping[str, Any]] = None,
        request: Optional[RequestMeta] = None,
    ) -> None:
        request = request or RequestMeta()
        kind = getattr(error, "kind", type(error).__name__)

        self._logger.warning(
            "hutko callback rejected: %s: %s",
            kind, error,
            extra={
                "error_kind": kind,
                "request_method": request.method,
                "request_uri": request.uri,
                "client_host": request.client_host,
                "callback_order_id": (payload or {}).get("order_id"),
            },
        )

    def store(
        self,
        error: Exception,
        payload: Optional[Mapping[str, Any]] = None,
        raw_body: Optional[bytes] = None,
        request: Optional[RequestMeta] = None,
    ) -> None:
        request = request or RequestMeta()
        db = None
        try:
            db = self._session_factory()
            db.add(CallbackFailure(
                error_kind=getattr(error, "kind", type(error).__name__),
                message=str(error),
                request_method=request.method,
                request_uri=request.uri,
                client_host=request.client_host,
                payload=json.dumps(payload, ensure_ascii=False, default=str) if payload is not None else None,
                raw_body=raw_body[:MAX_RAW_BODY].decode("utf-8", "replace") if raw_body else None,
            ))
            db.commit()
        except Exception:
            self._logger.exception("Could not store callback failure record")
        finally:
            if db is not None:
                db.close()
