import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from planwatch.codec.encoder import format_timestamp
from planwatch.logs import LEVELS
from planwatch.messaging import MessageStore


def level_value(level: str) -> int:
    """Maps a status level name ('warning' is accepted for 'warn') onto a logging level."""
    name = level.lower()
    if name == "warning":
        name = "warn"
    return LEVELS.get(name, logging.INFO)


class CliRenderer:
    """
    Status messages as bare text lines on stderr, for pipes and CI logs
    where the rich renderer's styling would only add noise. Anything above
    info is tagged with its level, like plain event output.
    """

    def __init__(
        self,
        store: MessageStore,
        stream: Optional[TextIO] = None,
        min_level: str = "info",
    ):
        self._store = store
        self._stream = stream if stream is not None else sys.stderr
        self._min_level = level_value(min_level)

    def render(self, msg_id: str, level: str, **kwargs: Any):
        value = level_value(level)
        if value < self._min_level:
            return
        text = self._store.get(msg_id, **kwargs)
        if value > logging.INFO:
            text = f"[{logging.getLevelName(value)}] {text}"
        print(text, file=self._stream, flush=True)


class JsonRenderer:
    """
    Status messages as one JSON object per line, shaped like the stream's own
    envelope so both can be fed to the same log tooling.
    """

    def __init__(
        self,
        store: MessageStore,
        stream: Optional[TextIO] = None,
        min_level: str = "info",
    ):
        self._store = store
        self._stream = stream if stream is not None else sys.stderr
        self._min_level = level_value(min_level)

    def render(self, msg_id: str, level: str, **kwargs: Any):
        if level_value(level) < self._min_level:
            return

        record = {
            "@level": "warn" if level == "warning" else level,
            "@message": self._store.get(msg_id, **kwargs),
            "@module": "planwatch",
            "@timestamp": format_timestamp(datetime.now(timezone.utc)),
            "type": "status",
            "id": msg_id,
            "fields": kwargs,
        }
        print(json.dumps(record, default=str), file=self._stream, flush=True)
