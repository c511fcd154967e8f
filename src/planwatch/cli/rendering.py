import logging
from typing import Any, Optional

from rich.console import Console

from planwatch.config import Theme
from planwatch.messaging import MessageStore
from planwatch.renderers import level_value

# Status levels to theme style names
LEVEL_STYLES = {
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
}


class RichCliRenderer:
    """
    A renderer that uses the 'rich' library for formatted, colorful output.
    """

    def __init__(
        self,
        store: MessageStore,
        theme: Optional[Theme] = None,
        min_level: str = "info",
        console: Optional[Console] = None,
    ):
        self._store = store
        self._theme = theme or Theme()
        self._console = console or Console(theme=self._theme.to_rich(), stderr=True)
        self._min_level = level_value(min_level)

    def render(self, msg_id: str, level: str, **kwargs: Any):
        value = level_value(level)
        if value < self._min_level:
            return

        message = self._store.get(msg_id, **kwargs)
        style = LEVEL_STYLES.get(value, "")
        # Messages may echo raw stream content, which must not be read as markup
        self._console.print(message, style=style, markup=False, highlight=False)
