import logging

from rich.console import Console
from rich.logging import RichHandler

from booktracker.config import settings

_configured = False


def setup_logging(level: str | None = None, rich_output: bool = True) -> None:
    """Configure the root logger once. Later calls only adjust the level."""
    global _configured
    resolved = (level or settings.log_level or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(resolved)
    if _configured:
        return

    if rich_output:
        handler: logging.Handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
