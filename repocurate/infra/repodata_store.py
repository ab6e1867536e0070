"""
Repodata file storage for repocurate.

Reads input repodata.json files and writes curated ones with:
- Atomic writes (write to temp, then rename)
- Automatic parent directory creation
- Thread-safe operations
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..errors import LoadError
from ..services.render_service import dumps

logger = logging.getLogger(__name__)

REPODATA_FILENAME = "repodata.json"


def read_repodata(path: Path, subdir: str) -> str:
    """
    Read one repodata file as text.

    Raises:
        LoadError: if the file is missing or unreadable
    """
    path = Path(path).expanduser()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(subdir, f"cannot read {path}: {e}") from e


class RepodataStore:
    """
    Writes curated repodata under ``<root>/<subdir>/repodata.json``.

    Example:
        store = RepodataStore(Path("curated"))
        paths = store.write_all({"noarch": doc, "linux-64": doc})
    """

    def __init__(self, root: Path, indent: Optional[int] = None):
        """
        Initialize RepodataStore.

        Args:
            root: Output directory (created on first write)
            indent: JSON indentation; None writes compact documents
        """
        self.root = Path(root).expanduser().resolve()
        self.indent = indent
        self._lock = threading.Lock()

    def path_for(self, subdir: str) -> Path:
        return self.root / subdir / REPODATA_FILENAME

    def _write_atomic(self, path: Path, text: str) -> None:
        """Write text atomically using temp file and rename."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp"
        )

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(text)
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def write(self, subdir: str, document: Mapping[str, Any]) -> Path:
        """Write one subdir's document. Returns the file path."""
        path = self.path_for(subdir)
        text = dumps(dict(document), indent=self.indent)
        with self._lock:
            self._write_atomic(path, text)
        logger.info(f"Wrote {path}")
        return path

    def write_all(self, documents: Mapping[str, Mapping[str, Any]]) -> List[Path]:
        """
        Write every document.

        All documents are serialized before the first file is touched, so
        a serialization failure leaves the output directory unchanged.
        """
        texts: Dict[str, str] = {
            subdir: dumps(dict(document), indent=self.indent)
            for subdir, document in sorted(documents.items())
        }
        paths = []
        with self._lock:
            for subdir, text in texts.items():
                path = self.path_for(subdir)
                self._write_atomic(path, text)
                logger.info(f"Wrote {path}")
                paths.append(path)
        return paths
