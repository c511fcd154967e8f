import io
import json
import logging

import pytest
from rich.console import Console

from planwatch.cli.rendering import RichCliRenderer
from planwatch.config import Theme
from planwatch.messaging.bus import MessageBus, MessageStore
from planwatch.renderers import CliRenderer, JsonRenderer, level_value


@pytest.fixture
def locales(tmp_path):
    (tmp_path / "en").mkdir()
    (tmp_path / "en" / "watch.json").write_text(
        json.dumps({"watch.completed": "Done: {count}", "watch.failed": "Failed"})
    )
    (tmp_path / "de").mkdir()
    (tmp_path / "de" / "watch.json").write_text(json.dumps({"watch.completed": "Fertig: {count}"}))
    return tmp_path


def test_store_formats_templates():
    store = MessageStore()

    assert store.get("watch.time_spent", elapsed="1m5s") == "Time spent: 1m5s"
    assert store.get("no.such.message") == "<no.such.message>"
    assert "missing key" in store.get("watch.time_spent")


def test_locale_is_layered_over_default(locales):
    store = MessageStore("de", locales_dir=locales)

    assert store.locale == "de"
    assert store.get("watch.completed", count=2) == "Fertig: 2"
    # Untranslated ids fall back to the default locale
    assert store.get("watch.failed") == "Failed"


def test_unknown_locale_falls_back(locales):
    store = MessageStore("fr", locales_dir=locales)

    assert store.locale == "en"
    assert store.get("watch.completed", count=1) == "Done: 1"


def test_use_locale_switches_catalogue(locales):
    store = MessageStore(locales_dir=locales)
    store.use_locale("de")
    assert store.get("watch.completed", count=3) == "Fertig: 3"

    store.use_locale("en")
    assert store.get("watch.completed", count=3) == "Done: 3"


@pytest.mark.parametrize(
    "level, value",
    [("info", logging.INFO), ("warn", logging.WARNING), ("warning", logging.WARNING), ("ERROR", logging.ERROR), ("odd", logging.INFO)],
)
def test_level_value(level, value):
    assert level_value(level) == value


def test_cli_renderer_tags_and_filters_levels():
    store = MessageStore()
    out = io.StringIO()
    bus = MessageBus(store)
    bus.set_renderer(CliRenderer(store, stream=out, min_level="warn"))

    bus.info("watch.started", source="stdin")
    bus.error("watch.source_error", error="gone")

    assert out.getvalue() == "[ERROR] ❌ Cannot read input: gone\n"


def test_json_renderer_uses_stream_envelope():
    store = MessageStore()
    out = io.StringIO()
    bus = MessageBus(store)
    bus.set_renderer(JsonRenderer(store, stream=out))

    bus.warning("watch.anomalies", count=3)

    record = json.loads(out.getvalue())
    assert record["@level"] == "warn"
    assert record["type"] == "status"
    assert record["id"] == "watch.anomalies"
    assert record["fields"] == {"count": 3}
    assert record["@message"].startswith("⚠️  3 lifecycle")
    assert record["@timestamp"].endswith("Z")


def test_rich_renderer_prints_without_markup():
    out = io.StringIO()
    theme = Theme()
    renderer = RichCliRenderer(
        MessageStore(), theme=theme, console=Console(file=out, theme=theme.to_rich(), width=200)
    )

    renderer.render("watch.failed", "error", error="[bold]raw[/bold]")

    assert "[bold]raw[/bold]" in out.getvalue()


def test_unknown_ids_are_still_rendered(caplog):
    store = MessageStore()
    out = io.StringIO()
    bus = MessageBus(store)
    bus.set_renderer(CliRenderer(store, stream=out))

    with caplog.at_level(logging.WARNING, logger="planwatch"):
        bus.info("watch.nonexistent")

    assert out.getvalue() == "<watch.nonexistent>\n"
    assert "Unknown message id" in caplog.text


def test_bus_without_renderer_is_silent():
    bus = MessageBus(MessageStore())
    assert bus.renderer is None
    bus.error("watch.failed", error="x")
