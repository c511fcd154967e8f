from .stream import FileLineSource, PipeLineSource, StreamLineSource, open_line_source

__all__ = ["FileLineSource", "PipeLineSource", "StreamLineSource", "open_line_source"]
