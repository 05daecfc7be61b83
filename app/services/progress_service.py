"""
Import progress notifications.

Events are advisory: a sink failure is logged and never interrupts the import.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from kombu import Connection, Exchange

from app.services.config_service import config_service

logger = logging.getLogger("app.import.progress")

PROGRESS_EVENT = "import:progress"
COMPLETED_EVENT = "import:completed"
FAILED_EVENT = "import:failed"


class ImportStage(str, Enum):
    VALIDATION = "validation"
    PARSING = "parsing"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"


class EventSink(Protocol):
    def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        ...


def batch_room(batch_id: str) -> str:
    return f"batch:{batch_id}"


class LoggingEventSink:
    """Sink that only writes events to the log."""

    def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Event {event} room={room} payload={payload}")


class KombuEventSink:
    """
    Publishes events as JSON to a topic exchange on the message broker.

    Routing keys look like ``batch.<batch_id>.progress`` so subscribers can bind
    to one batch or to all of them.
    """

    def __init__(self, broker_url: str, exchange_name: str, max_retries: int = 2):
        self.broker_url = broker_url
        self.exchange = Exchange(exchange_name, type="topic", durable=True)
        self.max_retries = max_retries

    @staticmethod
    def routing_key(room: str, event: str) -> str:
        return f"{room.replace(':', '.')}.{event.split(':')[-1]}"

    def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        with Connection(self.broker_url) as connection:
            producer = connection.Producer(serializer="json")
            producer.publish(
                {"event": event, "room": room, "data": payload},
                exchange=self.exchange,
                routing_key=self.routing_key(room, event),
                declare=[self.exchange],
                retry=True,
                retry_policy={"max_retries": self.max_retries},
            )


class ImportProgressPublisher:
    """Builds import events and hands them to a sink, fire-and-forget."""

    def __init__(self, sink: EventSink):
        self.sink = sink

    def _publish(self, batch_id: str, event: str, payload: Dict[str, Any]) -> None:
        try:
            self.sink.publish(batch_room(batch_id), event, payload)
        except Exception as e:
            logger.warning(f"Failed to publish {event} for batch {batch_id}: {e}")

    def emit_progress(
        self,
        batch_id: str,
        job_id: str,
        progress: int,
        stage: ImportStage,
        message: Optional[str] = None,
    ) -> None:
        payload = {
            "batchId": batch_id,
            "jobId": job_id,
            "progress": progress,
            "stage": ImportStage(stage).value,
        }
        if message is not None:
            payload["message"] = message
        self._publish(batch_id, PROGRESS_EVENT, payload)

    def emit_completed(
        self,
        batch_id: str,
        job_id: str,
        total_records: int,
        successful_records: int,
        failed_records: int,
        duration: int,
    ) -> None:
        """Duration is in milliseconds."""
        self._publish(
            batch_id,
            COMPLETED_EVENT,
            {
                "batchId": batch_id,
                "jobId": job_id,
                "totalRecords": total_records,
                "successfulRecords": successful_records,
                "failedRecords": failed_records,
                "duration": duration,
            },
        )

    def emit_failed(self, batch_id: str, job_id: str, error: str, timestamp: Optional[str] = None) -> None:
        self._publish(
            batch_id,
            FAILED_EVENT,
            {
                "batchId": batch_id,
                "jobId": job_id,
                "error": error,
                "timestamp": timestamp or config_service.now().isoformat(),
            },
        )


_publisher: Optional[ImportProgressPublisher] = None


def get_progress_publisher() -> ImportProgressPublisher:
    """Configured publisher, built once per process."""
    global _publisher
    if _publisher is None:
        if config_service.import_events_enabled:
            sink = KombuEventSink(config_service.broker_url, config_service.import_events_exchange)
            logger.info(f"Publishing import events to exchange {config_service.import_events_exchange}")
        else:
            sink = LoggingEventSink()
            logger.info("Import events disabled, logging only")
        _publisher = ImportProgressPublisher(sink)
    return _publisher
