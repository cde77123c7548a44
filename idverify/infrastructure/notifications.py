"""Notification sinks."""
from idverify.core.logging import get_logger
from idverify.domain.interfaces.notification import NotificationSink
from idverify.domain.value_objects.verification import EventKind, SessionEvent

logger = get_logger(__name__)


class LoggingNotificationSink(NotificationSink):
    """Writes session events to the structured log for an external log collector."""

    async def publish(self, event: SessionEvent) -> None:
        fields = {
            "kind": event.kind.value,
            "state": event.state.value,
            "identifier": event.identifier,
            "message": event.message,
        }
        if event.verdict is not None:
            fields["verdict"] = event.verdict.model_dump()
        if event.result is not None:
            fields["result"] = event.result.model_dump(mode="json")

        if event.kind == EventKind.ERROR:
            logger.error("Verification session event", **fields)
        else:
            logger.info("Verification session event", **fields)
