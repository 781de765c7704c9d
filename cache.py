"""
File-backed JSON store for cached YNAB data.

Documents live under ``<base_dir>/<budget_id>/<name>``. Reads are forgiving: a
missing or unreadable document is simply treated as "no cache", since
everything stored here can be rebuilt from YNAB. Writes and deletes raise.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".ynab-mcp" / "cache"


class CacheStore:
    """Namespaced JSON documents on disk, one directory per budget."""

    def __init__(self, base_dir: Path | str = DEFAULT_CACHE_DIR):
        self.base_dir = Path(base_dir).expanduser()

    def namespace_dir(self, budget_id: str) -> Path:
        """Return the cache directory for a budget, creating it if needed."""
        path = self._namespace_path(budget_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def load[T: BaseModel](
        self, budget_id: str, name: str, model: type[T]
    ) -> T | None:
        """Load a document for a budget, or None if missing or unreadable."""
        return self._read(self.namespace_dir(budget_id) / name, model)

    def save(self, budget_id: str, name: str, value: BaseModel) -> None:
        """Replace a budget's document with ``value``."""
        self._write(self.namespace_dir(budget_id) / name, value)

    def delete(self, budget_id: str, name: str) -> bool:
        """Delete one document. Returns whether it existed."""
        path = self._namespace_path(budget_id) / name
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted cache file {path}")
        return True

    def clear(self, budget_id: str) -> None:
        """Delete every cached document for a budget."""
        path = self._namespace_path(budget_id)
        if path.exists():
            shutil.rmtree(path)
            logger.info(f"Cleared cache for budget {budget_id}")

    def load_global[T: BaseModel](self, name: str, model: type[T]) -> T | None:
        """Load a document that is not tied to any budget."""
        return self._read(self.base_dir / name, model)

    def save_global(self, name: str, value: BaseModel) -> None:
        self._write(self.base_dir / name, value)

    def _namespace_path(self, budget_id: str) -> Path:
        if budget_id in {"", ".", ".."} or Path(budget_id).name != budget_id:
            raise ValueError(f"Invalid budget ID for cache namespace: {budget_id!r}")
        return self.base_dir / budget_id

    def _read[T: BaseModel](self, path: Path, model: type[T]) -> T | None:
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Error reading cache file {path}: {e}")
            return None
        except UnicodeDecodeError as e:
            logger.warning(f"Ignoring corrupt cache file {path}: {e}")
            return None

        try:
            return model.model_validate_json(content)
        except ValidationError as e:
            logger.warning(f"Ignoring corrupt cache file {path}: {e}")
            return None

    def _write(self, path: Path, value: BaseModel) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value.model_dump_json(indent=2))
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
