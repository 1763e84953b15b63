"""
Ingestion Entrypoint

Accepts ``{connectionId, organisationId?, dryRun, payload, hints?}`` and
returns ``{status, message, data, outcomes}``.

Before any item runs the organisation is resolved and its catalog loaded
and compiled; a failure there aborts the whole call with status 500.

Organisation resolution, in order:
1. explicit ``organisationId`` (request, or ``companyMetadata`` in the payload)
2. ``email`` connections: local part of the payload's ``recipient``
3. a ``connection_organisation_mapping`` row for the connection and the
   payload's ``data.projectCode``
The organisation must exist in the ``organisations`` table.
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ...config.settings import IngestionConfig, get_settings
from ...core.entities import CONNECTION_MAPPING_TABLE, ORGANISATIONS_TABLE
from ...core.errors import OrganisationResolutionError
from ...core.session import IngestionHints, IngestionResult, IngestionSession
from ..intelligence.oracle import Oracle
from ..schema.catalog import CatalogLoader
from ..schema.compiler import SchemaCompiler
from ..storage.store import Condition, QueryOptions, StorageEngine
from .pipeline import BatchOrchestrator

logger = logging.getLogger(__name__)


EMAIL_CONNECTION = "email"


class IngestionRequest(BaseModel):
    """An ingestion call. Accepts the camelCase wire names."""
    model_config = ConfigDict(populate_by_name=True)

    connection_id: str = Field(alias="connectionId")
    organisation_id: Optional[str] = Field(default=None, alias="organisationId")
    dry_run: bool = Field(default=False, alias="dryRun")
    payload: Any = None
    hints: IngestionHints = Field(default_factory=IngestionHints)


def payload_metadata(payload: Any) -> Dict[str, Any]:
    """``companyMetadata`` carried inside a payload, if any."""
    if isinstance(payload, dict) and isinstance(payload.get("companyMetadata"), dict):
        return payload["companyMetadata"]
    return {}


def effective_hints(request: IngestionRequest) -> IngestionHints:
    """Request hints, completed by hints carried in the payload's ``companyMetadata``."""
    embedded = IngestionHints.model_validate(payload_metadata(request.payload))
    explicit = request.hints.model_dump(exclude_unset=True)
    return embedded.model_copy(update=explicit)


def flatten_items(payload: Any) -> List[Any]:
    """Unwrap ``companyDataContents`` and flatten lists into items."""
    if isinstance(payload, dict) and "companyDataContents" in payload:
        payload = payload["companyDataContents"]

    if not isinstance(payload, list):
        return [payload]

    items: List[Any] = []
    for entry in payload:
        items.extend(flatten_items(entry) if isinstance(entry, list) else [entry])
    return items


class OrganisationResolver:
    """Determines which organisation an ingestion call belongs to."""

    def __init__(self, storage: StorageEngine):
        self._storage = storage

    def resolve(self, request: IngestionRequest) -> Tuple[str, Dict[str, Any]]:
        """
        Return the organisation id and its row.

        Raises:
            OrganisationResolutionError: no organisation could be inferred,
                or it does not exist
        """
        organisation_id = request.organisation_id or payload_metadata(request.payload).get("organisationId")
        if not organisation_id:
            organisation_id = self._infer(request.connection_id, request.payload)
        if not organisation_id:
            raise OrganisationResolutionError(
                f"Unable to infer organisation from connection {request.connection_id}"
            )

        try:
            organisation = self._storage.get_by_id(ORGANISATIONS_TABLE, organisation_id)
        except Exception as e:
            raise OrganisationResolutionError(f"Unable to load organisation {organisation_id}: {e}") from e
        if organisation is None:
            raise OrganisationResolutionError(f"Unable to find organisation {organisation_id}")

        logger.info("Resolved organisation %s for connection %s", organisation_id, request.connection_id)
        return organisation_id, organisation

    def _infer(self, connection_id: str, payload: Any) -> Optional[str]:
        if not isinstance(payload, dict):
            return None

        if connection_id == EMAIL_CONNECTION:
            recipient = payload.get("recipient")
            return recipient.split("@")[0] if isinstance(recipient, str) and recipient else None

        data = payload.get("data")
        project_code = data.get("projectCode") if isinstance(data, dict) else None
        if not project_code:
            return None

        try:
            rows = self._storage.query(CONNECTION_MAPPING_TABLE, QueryOptions(
                and_conditions=[
                    Condition("connection", "eq", connection_id),
                    Condition("connection_id", "eq", project_code),
                ],
                limit=1
            ))
        except Exception as e:
            raise OrganisationResolutionError(f"Unable to read connection mapping: {e}") from e
        return rows[0].get("organisation_id") if rows else None


class IngestionService:
    """
    Public entrypoint of the ingestion engine.

    Resolves the organisation, loads and compiles its catalog, and runs
    the batch orchestrator over the flattened payload.
    """

    def __init__(
        self,
        storage: StorageEngine,
        oracle: Oracle,
        config: IngestionConfig = None,
        compiler: SchemaCompiler = None
    ):
        self.config = config or get_settings().ingestion
        self._storage = storage
        self._organisations = OrganisationResolver(storage)
        self._catalogs = CatalogLoader(storage, self.config)
        self._compiler = compiler or SchemaCompiler()
        self.orchestrator = BatchOrchestrator(storage, oracle, self.config)

    def ingest(self, request: IngestionRequest) -> IngestionResult:
        try:
            session = self.open_session(request)
        except (OrganisationResolutionError, ValidationError) as e:
            logger.error("Ingestion aborted: %s", e)
            return IngestionResult.aborted(str(e), dry_run=request.dry_run)

        return self.orchestrator.run(session, flatten_items(request.payload))

    def open_session(self, request: IngestionRequest) -> IngestionSession:
        """Build the session for a top-level call."""
        organisation_id, organisation = self._organisations.resolve(request)
        catalog = self._catalogs.load(organisation_id)
        return IngestionSession(
            organisation_id=organisation_id,
            organisation_data=organisation,
            catalog=catalog,
            compiled=self._compiler.compile(catalog),
            dry_run=request.dry_run,
            is_top_level=True,
            hints=effective_hints(request)
        )

    def handle(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Validate a wire-format request body and return the wire-format response."""
        try:
            request = IngestionRequest.model_validate(body)
        except ValidationError as e:
            logger.error("Invalid ingestion request: %s", e)
            return IngestionResult.aborted(f"Invalid request: {e}").to_response()
        return self.ingest(request).to_response()
