import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from booktracker.errors import LegacyMigrationError

logger = logging.getLogger(__name__)


class LegacyStorage:
    """Local JSON file holding the pre-sync library blob."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def read(self) -> Optional[Dict[str, Any]]:
        """Return the stored blob, or None when the file is missing or empty."""
        if not self.path.exists():
            return None
        text = self.path.read_text(encoding="utf-8").strip()
        if not text:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise LegacyMigrationError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise LegacyMigrationError(f"{self.path} does not contain a JSON object")
        return data or None

    def write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)
        logger.debug(f"Wrote local state to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
