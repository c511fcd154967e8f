import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from planwatch.spec.protocols import MessageRenderer

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).parent.parent / "locales"
DEFAULT_LOCALE = "en"


def _load_catalogue(locale_dir: Path) -> Dict[str, str]:
    catalogue: Dict[str, str] = {}
    for message_file in sorted(locale_dir.glob("*.json")):
        try:
            with open(message_file, "r", encoding="utf-8") as f:
                catalogue.update(json.load(f))
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to load message file %s: %s", message_file, e)
    return catalogue


class MessageStore:
    """
    Status message templates, keyed by message id.

    The default locale is always loaded first and the requested locale is
    layered over it, so a partial translation still produces every run
    outcome message.
    """

    def __init__(self, locale: str = DEFAULT_LOCALE, locales_dir: Path = LOCALES_DIR):
        self._locales_dir = locales_dir
        self._messages: Dict[str, str] = {}
        self.locale = DEFAULT_LOCALE
        self.use_locale(locale)

    def use_locale(self, locale: str):
        messages = _load_catalogue(self._locales_dir / DEFAULT_LOCALE)
        if locale != DEFAULT_LOCALE:
            locale_dir = self._locales_dir / locale
            if locale_dir.is_dir():
                messages.update(_load_catalogue(locale_dir))
            else:
                logger.warning("No messages for locale '%s', using '%s'", locale, DEFAULT_LOCALE)
                locale = DEFAULT_LOCALE
        self._messages = messages
        self.locale = locale

    def __contains__(self, msg_id: str) -> bool:
        return msg_id in self._messages

    def get(self, msg_id: str, **kwargs: Any) -> str:
        template = self._messages.get(msg_id)
        if template is None:
            return f"<{msg_id}>"
        try:
            return template.format(**kwargs)
        except KeyError as e:
            return f"<Formatting error for '{msg_id}': missing key {e}>"


class MessageBus:
    """Routes status messages to whichever renderer the CLI installed."""

    def __init__(self, store: MessageStore):
        self._store = store
        self._renderer: Optional[MessageRenderer] = None

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def renderer(self) -> Optional[MessageRenderer]:
        return self._renderer

    def set_renderer(self, renderer: MessageRenderer):
        self._renderer = renderer

    def emit(self, level: str, msg_id: str, **kwargs: Any) -> None:
        if msg_id not in self._store:
            logger.warning("Unknown message id '%s'", msg_id)
        if self._renderer is not None:
            self._renderer.render(msg_id, level, **kwargs)

    def info(self, msg_id: str, **kwargs: Any) -> None:
        self.emit("info", msg_id, **kwargs)

    def warning(self, msg_id: str, **kwargs: Any) -> None:
        self.emit("warn", msg_id, **kwargs)

    def error(self, msg_id: str, **kwargs: Any) -> None:
        self.emit("error", msg_id, **kwargs)


bus = MessageBus(store=MessageStore())
