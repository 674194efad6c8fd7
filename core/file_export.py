"""
Pattern Relay - File Export
Writes results that are too large to display inline to text files.

All files are written under EXPORT_DIR with sanitized names.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.logger import log_info

MAX_TITLE_LENGTH = 60


@dataclass
class ExportArtifact:
    """A file produced by an export."""
    path: Path
    filename: str
    size: int


def sanitize_title(title: str) -> str:
    """
    Turn a suggested title into a safe filename stem.

    Args:
        title: The raw title (usually a pattern name)

    Returns:
        Stem containing only alphanumerics, dash and underscore
    """
    stem = re.sub(r"[^\w\-]+", "_", title.strip()).strip("_.")
    stem = stem[:MAX_TITLE_LENGTH]
    return stem or "pattern_output"


class FileExporter:
    """Exports text to timestamped .txt files."""

    def __init__(self, export_dir: Optional[Path] = None):
        if export_dir is None:
            import config
            export_dir = config.EXPORT_DIR
        self.export_dir = Path(export_dir)

    def export(self, text: str, suggested_title: str) -> ExportArtifact:
        """
        Write text to a new file.

        Args:
            text: Content to export
            suggested_title: Title used for the filename

        Returns:
            ExportArtifact describing the written file
        """
        self.export_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        filename = f"{sanitize_title(suggested_title)}_{timestamp}.txt"
        path = self.export_dir / filename
        path.write_text(text, encoding="utf-8")

        log_info(f"Exported {len(text)} chars to {path}", prefix="💾")
        return ExportArtifact(path=path, filename=filename, size=len(text))


# Global exporter instance
_file_exporter: Optional[FileExporter] = None


def get_file_exporter() -> FileExporter:
    """Get the global file exporter instance."""
    global _file_exporter
    if _file_exporter is None:
        _file_exporter = FileExporter()
    return _file_exporter
