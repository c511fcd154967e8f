from .bus import DEFAULT_LOCALE, MessageBus, MessageStore, bus

__all__ = ["DEFAULT_LOCALE", "MessageBus", "MessageStore", "bus"]
