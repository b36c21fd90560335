from messaging_core.realtime.connection_manager import ConnectionContext, ConnectionManager

__all__ = [
    "ConnectionContext",
    "ConnectionManager",
]
