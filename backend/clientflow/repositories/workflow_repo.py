"""Workflow Definition Repository - Definition files from the workflows directory"""
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..config.settings import Settings, get_settings
from ..domain.models import WorkflowDefinition
from ..domain.errors import NotFoundError, ParseError
from ..engine.loader import DefinitionLoader
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFINITION_SUFFIXES = (".yaml", ".yml", ".json")


class WorkflowDefinitionRepository:
    """Repository for workflow definitions stored as files"""

    def __init__(
        self,
        workflows_dir: Union[str, Path],
        cache_enabled: bool = False,
        cache_ttl_seconds: int = 300,
        loader: Optional[DefinitionLoader] = None,
    ):
        self.workflows_dir = Path(workflows_dir)
        self.cache_enabled = cache_enabled
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self.loader = loader or DefinitionLoader()
        self._lock = threading.Lock()
        self._cache: Optional[List[WorkflowDefinition]] = None
        self._cache_expiry: Optional[datetime] = None
        self._cache_fingerprint: Optional[Tuple[Tuple[str, float], ...]] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "WorkflowDefinitionRepository":
        settings = settings or get_settings()
        return cls(
            settings.workflows_dir,
            cache_enabled=settings.definition_cache_enabled,
            cache_ttl_seconds=settings.definition_cache_ttl_seconds,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def list_definitions(self) -> List[WorkflowDefinition]:
        """
        Every definition in the directory, in file name order

        Raises:
            ParseError: A file is malformed, or two files share a workflow id
        """
        if not self.cache_enabled:
            return self._load_all()

        with self._lock:
            fingerprint = self._fingerprint()
            if (
                self._cache is not None
                and utc_now() < self._cache_expiry
                and fingerprint == self._cache_fingerprint
            ):
                return list(self._cache)

            self._cache = self._load_all()
            self._cache_expiry = utc_now() + self.cache_ttl
            self._cache_fingerprint = fingerprint
            return list(self._cache)

    def get_definition(self, workflow_id: str) -> WorkflowDefinition:
        """Definition by workflow id"""
        for definition in self.list_definitions():
            if definition.id == workflow_id:
                return definition
        raise NotFoundError(
            f"Workflow {workflow_id} not found",
            details={"workflow_id": workflow_id}
        )

    def invalidate(self) -> None:
        with self._lock:
            self._cache = None
            self._cache_expiry = None
            self._cache_fingerprint = None

    # =========================================================================
    # Internals
    # =========================================================================

    def _definition_files(self) -> List[Path]:
        if not self.workflows_dir.is_dir():
            logger.warning(f"Workflows directory not found: {self.workflows_dir}")
            return []
        return sorted(
            path for path in self.workflows_dir.iterdir()
            if path.is_file() and path.suffix in DEFINITION_SUFFIXES
        )

    def _fingerprint(self) -> Tuple[Tuple[str, float], ...]:
        return tuple((path.name, path.stat().st_mtime) for path in self._definition_files())

    def _load_all(self) -> List[WorkflowDefinition]:
        definitions: List[WorkflowDefinition] = []
        sources: Dict[str, str] = {}
        for path in self._definition_files():
            definition = self.loader.load_file(path)
            if definition.id in sources:
                raise ParseError(
                    f"Workflow id {definition.id} is defined in both "
                    f"{sources[definition.id]} and {path.name}",
                    details={"workflow_id": definition.id}
                )
            sources[definition.id] = path.name
            definitions.append(definition)

        logger.info(
            f"Loaded {len(definitions)} workflow definitions from {self.workflows_dir}",
            extra={"count": len(definitions), "path": str(self.workflows_dir)}
        )
        return definitions
