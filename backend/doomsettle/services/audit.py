"""Write-only audit sink."""

import logging
from typing import Any, Protocol

import logfire

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def record(self, event: str, details: dict[str, Any]) -> None: ...


class LogfireAuditSink:
    """
    Records audit events as structured Logfire logs.

    Fire-and-forget: a failing sink is logged and never blocks settlement.
    """

    def record(self, event: str, details: dict[str, Any]) -> None:
        attributes = {key: _plain(value) for key, value in details.items()}
        try:
            logfire.info("audit {audit_event}", audit_event=event, **attributes)
        except Exception as e:
            logger.warning(f"Audit record {event} dropped: {e}")
            return
        logger.debug(f"Audit: {event} {attributes}")


def _plain(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return str(value)
