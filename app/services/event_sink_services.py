from app.models.event_models import DomainEvent, DomainEventType
from abc import ABC, abstractmethod
from typing import Iterable, List
import resend
import asyncio
import logging

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Where lifecycle and ledger events go once their write has committed"""

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None: ...


class LoggingEventSink(EventSink):
    async def publish(self, event: DomainEvent) -> None:
        logger.info(f"📣 {event.type.value} project={event.project_id} bid={event.bid_id} actor={event.actor_id} payload={event.payload}")


class CompositeEventSink(EventSink):
    """Fans one event out to every sink; a sink that fails does not stop the ones after it"""

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    async def publish(self, event: DomainEvent) -> None:
        for sink in self.sinks:
            try:
                await sink.publish(event)
            except Exception as e:
                logger.error(f"❌ {type(sink).__name__} failed to publish {event.type.value} for project {event.project_id}: {str(e)}")


class EmailEventSink(EventSink):
    """Emails the operations inbox via Resend for the events someone has to act on"""

    NOTIFIED_EVENTS = {
        DomainEventType.PROJECT_AWARDED: "🏆 Project awarded",
        DomainEventType.PROJECT_CANCELLED: "🛑 Project cancelled",
        DomainEventType.PROJECT_EXPIRED: "⌛ Project expired without award",
    }

    def __init__(self, api_key: str, sender: str, recipients: List[str]):
        resend.api_key = api_key
        self.sender = sender
        self.recipients = recipients

    def _build_html(self, heading: str, event: DomainEvent) -> str:
        detail_rows = "".join(f"<p><strong>{key}:</strong> {value}</p>" for key, value in event.payload.items())
        return f"""
            <html>
                <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
                    <h2 style="color: #2563eb;">{heading}</h2>

                    <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">
                        <p><strong>Project ID:</strong> {event.project_id}</p>
                        <p><strong>Bid ID:</strong> {event.bid_id or "-"}</p>
                        <p><strong>When:</strong> {event.occurred_at.isoformat()}</p>
                        {detail_rows}
                    </div>

                    <p style="color: #6b7280; font-size: 14px; margin-top: 30px;">
                        This is an automated notification from the BidBuild platform.
                    </p>
                </body>
            </html>
            """

    async def publish(self, event: DomainEvent) -> None:
        heading = self.NOTIFIED_EVENTS.get(event.type)
        if heading is None:
            return

        try:
            params = {
                "from": self.sender,
                "to": self.recipients,
                "subject": f"{heading}: {event.project_id}",
                "html": self._build_html(heading, event),
            }
            # resend's client is synchronous
            email = await asyncio.to_thread(resend.Emails.send, params)
            logger.info(f"✅ Email notification sent for {event.type.value} on project {event.project_id}: {email}")

        except Exception as e:
            # Don't raise - a failed email must not undo a committed award or cancellation
            logger.error(f"❌ Failed to send email notification for project {event.project_id}: {str(e)}")


def build_event_sink(settings) -> EventSink:
    """Log every event; also email operations when a Resend key is configured"""
    sinks: List[EventSink] = [LoggingEventSink()]
    if settings.RESEND_API_KEY:
        sinks.append(EmailEventSink(settings.RESEND_API_KEY, settings.NOTIFICATION_EMAIL_FROM, [settings.NOTIFICATION_EMAIL_TO]))
    return CompositeEventSink(sinks)
