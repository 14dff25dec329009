"""Client for a project's external validation endpoint.

Projects may register a URL that vets every experiment write. The
endpoint receives the operation, the entity and, for updates, the version
being replaced; any non-2xx response rejects the write.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from xpmanager.errors import BadInputError

if TYPE_CHECKING:
    from xpmanager.models.experiment import Experiment, OperationType

logger = structlog.get_logger()

EXPERIMENT_ENTITY = "experiment"


class ExternalValidationClient:
    def __init__(self, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    async def validate(
        self,
        operation: OperationType,
        entity_type: str,
        entity: Experiment,
        context: Mapping[str, Any],
        url: str | None,
    ) -> None:
        if not url:
            return

        payload = {
            "operation": operation.value,
            "entity_type": entity_type,
            "data": entity.model_dump(mode="json"),
            "context": dict(context),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("External validation request failed", url=url, error=str(exc))
            raise BadInputError(f"error calling validation url {url}: {exc}") from exc

        if resp.is_success:
            return
        logger.info(
            "External validation rejected entity",
            url=url,
            status=resp.status_code,
            entity_type=entity_type,
        )
        raise BadInputError(
            f"Error validating data with validation URL: {resp.status_code} {resp.text}"
        )
