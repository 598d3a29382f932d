"""Event sink transport."""

from inventory_export.transport.transmitter import BatchSender, EventHubTransmitter, SendResult

__all__ = ["BatchSender", "EventHubTransmitter", "SendResult"]
