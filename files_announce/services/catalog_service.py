"""File catalog query adapter.

Provides:
- CatalogProvider: interface every catalog backend implements
- JsonFileCatalog: catalog backed by a JSON export of the file base
- CatalogService: area filtering and "new since" queries over a provider

Usage:
    provider = JsonFileCatalog(Path("data/catalog.json"))
    catalog = CatalogService(provider)

    areas = await catalog.list_areas("^(?!uploads).*$")
    file_ids = await catalog.find_new_files(areas[0].area_tag, since, until)
    record = await catalog.load_file(file_ids[0])
"""

import json
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog

from files_announce.models.catalog import Area, FileRecord
from files_announce.utils.exceptions import CatalogError, FileNotFoundInCatalogError

logger = structlog.get_logger()

FileId = Union[int, str]


class CatalogProvider(ABC):
    """Abstract base class for file catalog backends

    Implementations return areas and files in their own stable order;
    callers rely on that order for per-area caps.
    """

    @abstractmethod
    async def list_areas(self) -> List[Area]:
        """All file areas, in catalog order"""
        pass

    @abstractmethod
    async def find_new_files(
        self,
        area_tag: str,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> List[FileId]:
        """Ids of files in an area uploaded after ``since``

        Args:
            area_tag: Area to search
            since: Exclusive lower bound on upload time
            until: Optional inclusive upper bound on upload time

        Returns:
            File ids in catalog order (may be empty)
        """
        pass

    @abstractmethod
    async def load_file(self, file_id: FileId) -> Optional[FileRecord]:
        """Full record for a file id, or None if it no longer exists"""
        pass


class JsonFileCatalog(CatalogProvider):
    """Catalog read from a JSON document

    Layout::

        {
          "areas": [{"area_tag": "...", "name": "...", "desc": "..."}],
          "files": [{"file_id": 1, "area_tag": "...", "file_name": "...", ...}]
        }

    Order of both lists is the catalog order.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._areas: Optional[List[Area]] = None
        self._files: Dict[str, FileRecord] = {}
        self._order: List[str] = []

    def load(self) -> None:
        """Read and validate the catalog document"""
        if not self.path.exists():
            raise CatalogError(f"Catalog file not found: {self.path}")

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            areas = [Area(**a) for a in data.get("areas", [])]
            files = [FileRecord(**f) for f in data.get("files", [])]
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise CatalogError(f"Failed to read catalog {self.path}: {e}")

        self._areas = areas
        self._files = {}
        self._order = []
        for record in files:
            key = str(record.file_id)
            self._files[key] = record
            self._order.append(key)

        logger.info(
            "catalog_loaded",
            path=str(self.path),
            areas=len(areas),
            files=len(files),
        )

    def _ensure_loaded(self) -> None:
        if self._areas is None:
            self.load()

    async def list_areas(self) -> List[Area]:
        self._ensure_loaded()
        assert self._areas is not None
        return list(self._areas)

    async def find_new_files(
        self,
        area_tag: str,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> List[FileId]:
        self._ensure_loaded()
        found: List[FileId] = []
        for key in self._order:
            record = self._files[key]
            if record.area_tag != area_tag:
                continue
            if record.upload_timestamp <= since:
                continue
            if until is not None and record.upload_timestamp > until:
                continue
            found.append(record.file_id)
        return found

    async def load_file(self, file_id: FileId) -> Optional[FileRecord]:
        self._ensure_loaded()
        return self._files.get(str(file_id))


class CatalogService:
    """Query new files from a catalog provider"""

    def __init__(self, provider: CatalogProvider):
        self.provider = provider

    async def list_areas(self, filter_pattern: str) -> List[Area]:
        """Areas whose tag matches ``filter_pattern``, in catalog order

        Raises:
            CatalogError: If the provider fails
        """
        pattern = re.compile(filter_pattern)
        try:
            areas = await self.provider.list_areas()
        except CatalogError:
            raise
        except Exception as e:
            raise CatalogError(f"Failed to list file areas: {e}")

        matched = [a for a in areas if pattern.search(a.area_tag)]
        logger.debug(
            "areas_filtered",
            pattern=filter_pattern,
            total=len(areas),
            matched=len(matched),
        )
        return matched

    async def find_new_files(
        self,
        area_tag: str,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> List[FileId]:
        """Ids of files uploaded in ``(since, until]``

        Raises:
            CatalogError: If the provider fails
        """
        try:
            file_ids = await self.provider.find_new_files(area_tag, since, until)
        except CatalogError:
            raise
        except Exception as e:
            raise CatalogError(f"Failed to query new files in '{area_tag}': {e}")

        return list(file_ids)

    async def load_file(self, file_id: FileId) -> FileRecord:
        """Load a file record

        Raises:
            FileNotFoundInCatalogError: If the id no longer resolves
            CatalogError: If the provider fails
        """
        try:
            record = await self.provider.load_file(file_id)
        except CatalogError:
            raise
        except Exception as e:
            raise CatalogError(f"Failed to load file {file_id}: {e}")

        if record is None:
            raise FileNotFoundInCatalogError(file_id)
        return record

