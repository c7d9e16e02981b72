from app.tasks.process_inbound_task import (
    process_inbound_message,
    process_pending_messages,
    process_queued_message,
)

__all__ = [
    "process_inbound_message",
    "process_pending_messages",
    "process_queued_message",
]
