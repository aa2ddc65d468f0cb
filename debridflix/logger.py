"""
Logging context for debridflix.
Screen output through rich, optional plain-text file mirror.
"""
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from rich.console import Console
from rich.text import Text

_PREFIX_STYLES = {
    "[INFO] ": "cyan",
    "[WARNING] ": "yellow",
    "[ERROR] ": "red",
}
_REQUEST_ID_PATTERN = re.compile(r"^(\S+ : )")
_FAILURE_MARK = "✗"
_MAX_LOGGED_PAYLOAD = 5000


def redact_url(url: str) -> str:
    """Keep scheme and host, mask the middle of path and query (they carry tokens)."""
    def _cut(value: str) -> str:
        return f"{value[:5]}******{value[-5:]}" if value else ""

    parsed = urlsplit(url)
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{parsed.scheme}://{parsed.netloc}{_cut(parsed.path)}{_cut(query)}"


class DebridflixLogger:
    """Console + file logger, always flushed."""

    def __init__(self, log_file: Optional[Path] = None, debug: bool = False):
        self.log_file = log_file
        self.debug_mode = debug
        self._console = Console(highlight=False)
        self._file_handle = None
        self._start_time = datetime.now()

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = open(log_file, "a", buffering=1, encoding="utf-8")
            from debridflix import __version__

            self.log(f"({self._start_time.strftime('%H:%M:%S')}  Started debridflix {__version__})")

    def _screen_text(self, line: str) -> Text:
        text = Text(line)
        for prefix, style in _PREFIX_STYLES.items():
            if line.startswith(prefix):
                text.stylize(style, 0, len(prefix))
                break
        match = _REQUEST_ID_PATTERN.match(line)
        if match:
            text.stylize("grey50", 0, len(match.group(1)))
        marker = line.find(_FAILURE_MARK)
        if marker >= 0:
            text.stylize("red", marker, marker + 1)
        return text

    def log(self, msg: str, prefix: str = ""):
        """Log to screen and file"""
        output = f"{prefix}{msg}" if prefix else msg
        self._console.print(self._screen_text(output))
        if self._file_handle:
            self._file_handle.write(output + "\n")
            self._file_handle.flush()

    def info(self, msg: str):
        self.log(msg)

    def warning(self, msg: str):
        self.log(msg, "[WARNING] ")

    def error(self, msg: str):
        self.log(msg, "[ERROR] ")

    def debug(self, msg: str):
        """Debug message (only shown in debug mode)"""
        if self.debug_mode:
            timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            self.log(msg, f"[{timestamp}] [DEBUG] ")

    def api_request(self, method: str, url: str, params: Optional[dict] = None):
        """Log API request (debug mode only). URLs are redacted."""
        if self.debug_mode:
            self.debug(f"API Request: {method} {redact_url(url)}")
            if params:
                self.debug(f"  Params: {json.dumps(params, default=str)}")

    def api_response(self, status: int, data: object, elapsed_ms: float):
        """Log API response (debug mode only)"""
        if self.debug_mode:
            self.debug(f"API Response ({elapsed_ms:.0f}ms): Status {status}")
            if data:
                data_str = json.dumps(data, default=str)
                if len(data_str) > _MAX_LOGGED_PAYLOAD:
                    data_str = data_str[:_MAX_LOGGED_PAYLOAD] + " ... (truncated)"
                self.debug(f"  Data: {data_str}")

    def api_failed(self, service: str, detail: str):
        self.log(f"{service} request failed: {detail}", "[ERROR] ")

    def close(self):
        if self._file_handle:
            elapsed = datetime.now() - self._start_time
            self.log(f"(Ended session, elapsed {elapsed.total_seconds():.1f}s)")
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


_logger: Optional[DebridflixLogger] = None


def set_logger(logger: DebridflixLogger):
    """Set global logger instance"""
    global _logger
    _logger = logger


def get_logger() -> DebridflixLogger:
    """Get global logger instance"""
    global _logger
    if _logger is None:
        _logger = DebridflixLogger()
    return _logger


def log(msg: str):
    get_logger().log(msg)


def info(msg: str):
    get_logger().info(msg)


def warning(msg: str):
    get_logger().warning(msg)


def error(msg: str):
    get_logger().error(msg)


def debug(msg: str):
    get_logger().debug(msg)
