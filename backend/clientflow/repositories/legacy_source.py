"""Legacy Client Sources - Records that predate the native client state store"""
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..config.settings import Settings, get_settings
from ..domain.models import ClientState
from ..domain.errors import CorruptRecordError, StorageError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class LegacyClientSource:
    """
    Base class for legacy client records

    Two record shapes are understood:
    - client profiles (``id``, ``name``, ``type``, ``jurisdiction``, ...) as kept
      by the old client list; these start at the initial step of the workflow
      configured for their client type, with the profile kept in ``data``
    - state records that already carry ``clientId``/``workflowId`` but lack
      newer fields; these are taken as they are
    """

    def __init__(
        self,
        workflow_by_client_type: Optional[Dict[str, str]] = None,
        default_workflow_id: str = "individual_onboarding_v1",
        initial_step_id: str = "start",
    ):
        self.workflow_by_client_type = dict(workflow_by_client_type or {})
        self.default_workflow_id = default_workflow_id
        self.initial_step_id = initial_step_id

    def load_records(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def iter_client_states(self) -> Iterator[ClientState]:
        """Native client states for every usable legacy record"""
        for index, record in enumerate(self.load_records()):
            if not isinstance(record, dict):
                logger.warning(f"Skipping legacy record {index}: not a mapping")
                continue
            try:
                yield self.to_client_state(record)
            except (PydanticValidationError, KeyError) as e:
                logger.warning(
                    f"Skipping legacy record {index}: {e}",
                    extra={"client_id": record.get("id") or record.get("clientId")}
                )

    def to_client_state(self, record: Dict[str, Any]) -> ClientState:
        if "clientId" in record or "client_id" in record:
            return ClientState.model_validate(record)

        client_type = record.get("type", "")
        return ClientState(
            client_id=record["id"],
            workflow_id=self.workflow_by_client_type.get(client_type, self.default_workflow_id),
            current_step_id=self.initial_step_id,
            current_stage=None,
            collected_inputs={},
            completed_steps=[],
            completed_stages=[],
            data=dict(record),
        )


class YamlLegacyClientSource(LegacyClientSource):
    """Legacy records from a YAML or JSON file (a list, or {clients: [...]})"""

    def __init__(self, path: Union[str, Path], **kwargs: Any):
        super().__init__(**kwargs)
        self.path = Path(path)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "YamlLegacyClientSource":
        settings = settings or get_settings()
        return cls(
            settings.legacy_clients_path,
            workflow_by_client_type=settings.workflow_by_client_type,
            default_workflow_id=settings.default_workflow_id,
            initial_step_id=settings.legacy_initial_step_id,
        )

    def load_records(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            logger.info(f"No legacy client file at {self.path}", extra={"path": str(self.path)})
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or []
        except yaml.YAMLError as e:
            raise CorruptRecordError(f"Legacy client file {self.path} is not valid YAML: {e}")
        except OSError as e:
            raise StorageError(f"Could not read legacy client file {self.path}: {e}")

        if isinstance(data, dict):
            data = data.get("clients", [])
        if not isinstance(data, list):
            logger.warning(f"Legacy client file {self.path} holds no record list", extra={"path": str(self.path)})
            return []
        return data


class InMemoryLegacyClientSource(LegacyClientSource):
    """Legacy records held in memory"""

    def __init__(self, records: List[Dict[str, Any]], **kwargs: Any):
        super().__init__(**kwargs)
        self.records = list(records)

    def load_records(self) -> List[Dict[str, Any]]:
        return list(self.records)
