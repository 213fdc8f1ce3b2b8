"""
Output Storage

File system writer for phase artifacts and final reports.

Outputs are grouped per execution (``<execution_id>/phase1.json``) under a
root directory that defaults to ``~/.market_intel/output``. JSON outputs
carry a ``_metadata`` block. Writes never raise: failures are logged and
reported through the return value.
"""

import gzip
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from market_intel import __version__

logger = logging.getLogger(__name__)


DEFAULT_OUTPUT_DIR = Path.home() / ".market_intel" / "output"


class OutputWriter:
    """
    Writes JSON and text outputs below a base directory.

    Keys are relative paths such as ``mi_abc_123456/report.json``.
    """

    def __init__(
        self,
        base_path: Optional[str] = None,
        pretty_print: bool = True,
        compress: bool = False,
    ):
        """
        Initialize the writer.

        Args:
            base_path: Root directory for outputs.
                      Defaults to ~/.market_intel/output/
            pretty_print: Indent JSON outputs
            compress: Gzip JSON outputs (``.json.gz``)
        """
        self.base_path = Path(base_path).expanduser() if base_path else DEFAULT_OUTPUT_DIR
        self.pretty_print = pretty_print
        self.compress = compress

        logger.info(f"[OutputWriter] Initialized at {self.base_path}")

    def _get_path(self, key: str) -> Path:
        """Get full path for a key."""
        safe_key = key.replace("..", "").lstrip("/")
        return self.base_path / safe_key

    async def write(self, key: str, payload: Any, fmt: str = "json") -> bool:
        """
        Write an output.

        Args:
            key: Relative output path
            payload: JSON-serializable data, or a string for ``text``
            fmt: ``json`` or ``text``

        Returns:
            True when the output was written
        """
        try:
            path = self._get_path(key)
            path.parent.mkdir(parents=True, exist_ok=True)

            if fmt == "json":
                path = self._write_json(path, key, payload)
            elif fmt == "text":
                path.write_text(str(payload), encoding="utf-8")
            else:
                raise ValueError(f"Unsupported output format: {fmt}")

            logger.info(f"[OutputWriter] Wrote: {key} ({path.stat().st_size} bytes)")
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[OutputWriter] Failed to write {key}: {e}")
            return False

    def _write_json(self, path: Path, key: str, payload: Any) -> Path:
        output = payload
        if isinstance(payload, dict):
            output = {
                "_metadata": {
                    "generated_at": datetime.now(timezone.utc).isoformat(),
                    "filename": key,
                    "version": __version__,
                },
                **payload,
            }

        content = json.dumps(output, indent=2 if self.pretty_print else None, default=str)

        if self.compress:
            path = path.with_name(path.name + ".gz")
            with gzip.open(path, "wt", encoding="utf-8") as f:
                f.write(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    async def read(self, key: str) -> Optional[Any]:
        """
        Read an output written earlier.

        Returns the decoded JSON for ``.json`` keys, the text otherwise, and
        None when the output does not exist or cannot be read.
        """
        path = self._get_path(key)
        gz_path = path.with_name(path.name + ".gz")

        try:
            if gz_path.exists():
                with gzip.open(gz_path, "rt", encoding="utf-8") as f:
                    return json.load(f)
            if not path.exists():
                return None
            if path.suffix == ".json":
                with open(path, "r", encoding="utf-8") as f:
                    return json.load(f)
            return path.read_text(encoding="utf-8")

        except (OSError, ValueError) as e:
            logger.warning(f"[OutputWriter] Could not read {key}: {e}")
            return None

    async def exists(self, key: str) -> bool:
        path = self._get_path(key)
        return path.exists() or path.with_name(path.name + ".gz").exists()

    async def list_outputs(self, prefix: str = "") -> List[str]:
        """List output keys below ``prefix``."""
        search_path = self._get_path(prefix) if prefix else self.base_path
        if not search_path.exists():
            return []

        return sorted(
            str(p.relative_to(self.base_path))
            for p in search_path.rglob("*")
            if p.is_file()
        )

    async def write_all(self, outputs: Dict[str, Any]) -> Dict[str, bool]:
        """Write several JSON outputs. Returns success per key."""
        return {key: await self.write(key, payload) for key, payload in outputs.items()}
