"""Load the five report templates.

Templates are small text fragments authored by operators, often in an
8-bit code page and with Unix or DOS line endings. They are decoded with
the configured encoding and normalized to CRLF line endings.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from files_announce.models.options import TEMPLATE_KEYS, AnnounceOptions
from files_announce.output.description_formatter import find_description_indent
from files_announce.utils.exceptions import TemplateLoadError

logger = structlog.get_logger()

BUNDLED_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

_NEWLINE_RE = re.compile(r"\r?\n")


@dataclass(frozen=True)
class ReportTemplates:
    """Decoded templates in rendering order"""

    header: str
    area_header: str
    entry: str
    area_footer: str
    footer: str

    @property
    def desc_indent(self) -> int:
        """Column of the first ``{fileDesc}`` in the entry template"""
        return find_description_indent(self.entry)


def normalize_line_endings(text: str) -> str:
    """Convert LF and CRLF line endings to CRLF"""
    return _NEWLINE_RE.sub("\r\n", text)


class TemplateLoader:
    """Resolve, read and decode report templates"""

    def __init__(self, search_dirs: Optional[Sequence[Path]] = None):
        """Initialize loader.

        Args:
            search_dirs: Directories searched for relative template paths,
                in order. The bundled template directory is always last.
        """
        dirs: List[Path] = [Path(d) for d in (search_dirs or [])]
        if BUNDLED_TEMPLATE_DIR not in dirs:
            dirs.append(BUNDLED_TEMPLATE_DIR)
        self.search_dirs = dirs

    def resolve(self, name: str) -> Path:
        """Locate a template file

        Raises:
            TemplateLoadError: If no search location has the file
        """
        path = Path(name)
        if path.is_absolute():
            if path.is_file():
                return path
            raise TemplateLoadError(f"Template not found: {path}")

        for base in self.search_dirs:
            candidate = base / path
            if candidate.is_file():
                return candidate

        searched = ", ".join(str(d) for d in self.search_dirs)
        raise TemplateLoadError(f"Template not found: {name} (searched {searched})")

    def read(self, name: str, encoding: str) -> str:
        """Read one template, decoded and with CRLF line endings

        Raises:
            TemplateLoadError: If the file is missing, unreadable or undecodable
        """
        path = self.resolve(name)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise TemplateLoadError(f"Failed to read template {path}: {e}")

        try:
            text = data.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            raise TemplateLoadError(
                f"Failed to decode template {path} as {encoding}: {e}"
            )

        return normalize_line_endings(text)

    def load(self, options: AnnounceOptions) -> ReportTemplates:
        """Load all five templates named by ``options``

        Raises:
            TemplateLoadError: On the first template that cannot be loaded
        """
        names = options.template_names()
        texts = [
            self.read(names[key], options.template_encoding) for key in TEMPLATE_KEYS
        ]

        templates = ReportTemplates(*texts)
        logger.debug(
            "templates_loaded",
            encoding=options.template_encoding,
            desc_indent=templates.desc_indent,
        )
        return templates
