"""
Destination workflows - dynamic configuration forms and warehouse setup.

The destination definition's specification is compiled into fields; saving
first checks connectivity and only then records the warehouse.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pipedeck.clients import ActionClient, ActionRequest, ConnectorSchemaClient
from pipedeck.compiler import DEFAULT_BASE_PATH, SchemaSpecCompiler, prefill_values
from pipedeck.errors import PipedeckError
from pipedeck.schemas import FieldSpec

from .base import WorkflowResult, describe_error


logger = logging.getLogger(__name__)

CHECK_SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class DestinationForm:
    """Compiled configuration form for a destination definition."""
    definition_id: str
    fields: tuple[FieldSpec, ...]
    initial_values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WarehouseDraft:
    """
    A warehouse about to be saved.

    Attributes:
        name: Display name
        definition_id: Destination definition id
        definition_label: Destination definition name; its lowercase form is the warehouse type
        config: Connector configuration collected from the form
    """
    name: str
    definition_id: str
    definition_label: str
    config: dict[str, Any] = field(default_factory=dict)


class DestinationSetupWorkflow:
    """Loads destination forms and saves warehouses."""

    def __init__(
        self,
        client: Union[ActionClient, ConnectorSchemaClient],
        compiler: Optional[SchemaSpecCompiler] = None,
    ):
        self._client = client
        self._compiler = compiler or SchemaSpecCompiler()

    async def load_form(
        self,
        definition_id: str,
        configuration: Optional[dict[str, Any]] = None,
    ) -> DestinationForm:
        """
        Fetch and compile a destination definition's specification.

        Args:
            definition_id: Destination definition id
            configuration: Existing configuration to prefill (edit forms)

        Raises:
            SchemaAmbiguityError: If the specification cannot be compiled
        """
        schema = await self._client.fetch_connector_schema(definition_id)
        fields = self._compiler.compile(schema, DEFAULT_BASE_PATH)
        initial = prefill_values(fields, configuration or {}, DEFAULT_BASE_PATH)
        return DestinationForm(definition_id, tuple(fields), initial)

    async def save(self, draft: WarehouseDraft) -> WorkflowResult:
        """Check connectivity, then create the warehouse."""
        check = ActionRequest("POST", "airbyte/destinations/check_connection/", {
            "name": draft.name,
            "destinationDefId": draft.definition_id,
            "config": draft.config,
        })
        try:
            receipt = await self._client.submit_action(check)
            if receipt.body.get("status") != CHECK_SUCCEEDED:
                logs = receipt.body.get("logs") or ()
                return WorkflowResult(
                    ok=False,
                    message="Failed to connect to warehouse",
                    logs=tuple(str(line) for line in logs),
                )

            create = ActionRequest("POST", "organizations/warehouse/", {
                "wtype": draft.definition_label.lower(),
                "name": draft.name,
                "destinationDefId": draft.definition_id,
                "airbyteConfig": draft.config,
            })
            created = await self._client.submit_action(create)
        except PipedeckError as e:
            logger.error(f"Saving warehouse {draft.name} failed: {e}")
            return WorkflowResult(ok=False, message=describe_error(e))

        return WorkflowResult(ok=True, message="Warehouse created", data=created.body)
