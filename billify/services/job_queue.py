"""
Job queue publishing and the in-process queue used for local development.

Intake publishes one Job per upload; the extraction worker consumes them.
Azure Service Bus delivers at-least-once, so consumers must tolerate
seeing the same job twice.
"""

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

from ..models.job import Job


class JobPublisher:
    """
    Publishes jobs to an Azure Service Bus queue.

    Usage:
        # Production with Service Bus Queue
        from azure.servicebus import ServiceBusClient
        client = ServiceBusClient.from_connection_string(conn_str)
        sender = client.get_queue_sender(queue_name="billify-queue")
        publisher = JobPublisher(sender=sender)

        # Local development (single process)
        publisher = JobPublisher(sender=InMemoryJobQueue())
    """

    def __init__(self, sender: object, entity_name: str = "billify-queue"):
        """
        Initialize job publisher.

        Args:
            sender: Service Bus sender (ServiceBusSender) or an InMemoryJobQueue
            entity_name: Queue name, for logging
        """
        self.sender = sender
        self.entity_name = entity_name

    def publish(self, job: Job) -> None:
        """
        Publish a job message.

        The job id doubles as the Service Bus message id so duplicate
        detection (when enabled on the queue) can drop repeated sends.
        """
        from azure.servicebus import ServiceBusMessage

        message = ServiceBusMessage(job.to_json(), content_type="application/json", message_id=job.id)
        self.sender.send_messages(message)


@dataclass
class QueuedMessage:
    """Message held by the in-process queue; str() yields the body like Service Bus messages"""
    body: str
    message_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    delivery_count: int = 0

    def __str__(self) -> str:
        return self.body


class InMemoryJobQueue:
    """
    In-process stand-in for a Service Bus queue sender and receiver.

    Only useful inside one process (tests, demos). Receives on an empty queue
    block for up to max_wait_time, like a Service Bus receiver. Abandoned
    messages are redelivered with an incremented delivery count;
    dead-lettered messages are kept in `dead_letters` for inspection.
    """

    def __init__(self):
        self._pending: Deque[QueuedMessage] = deque()
        self._in_flight: dict = {}
        self._available = threading.Condition()
        self.dead_letters: List[dict] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def __len__(self) -> int:
        return len(self._pending)

    def send_messages(self, message) -> None:
        messages = message if isinstance(message, list) else [message]
        with self._available:
            for m in messages:
                self._pending.append(QueuedMessage(
                    body=str(m),
                    message_id=getattr(m, "message_id", None) or str(uuid.uuid4()),
                ))
            self._available.notify_all()

    def receive_messages(self, max_message_count: Optional[int] = 1,
                         max_wait_time: Optional[float] = None) -> List[QueuedMessage]:
        batch = []
        with self._available:
            if max_wait_time:
                self._available.wait_for(lambda: self._pending, timeout=max_wait_time)
            while self._pending and len(batch) < (max_message_count or 1):
                message = self._pending.popleft()
                message.delivery_count += 1
                self._in_flight[id(message)] = message
                batch.append(message)
        return batch

    def complete_message(self, message: QueuedMessage) -> None:
        self._in_flight.pop(id(message), None)

    def abandon_message(self, message: QueuedMessage) -> None:
        with self._available:
            if self._in_flight.pop(id(message), None) is not None:
                self._pending.append(message)
                self._available.notify_all()

    def dead_letter_message(self, message: QueuedMessage, reason: Optional[str] = None,
                            error_description: Optional[str] = None) -> None:
        self._in_flight.pop(id(message), None)
        self.dead_letters.append({
            "message_id": message.message_id,
            "body": message.body,
            "reason": reason,
            "error_description": error_description,
        })
