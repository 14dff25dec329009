"""Concurrent treatment-schema and external-rule validation.

One task validates each treatment's configuration against the project's
treatment schema; one more task sends the whole experiment to the
external validation URL. All tasks run in a single ``asyncio.TaskGroup``:
the first failure cancels the rest and is the only error reported.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict

from xpmanager.metrics import custom_validation_duration_seconds, custom_validation_failures_total
from xpmanager.models.experiment import Experiment
from xpmanager.validation.external import EXPERIMENT_ENTITY

if TYPE_CHECKING:
    from xpmanager.models.experiment import OperationType, Treatment
    from xpmanager.models.project import ProjectSettings
    from xpmanager.protocols import ExternalValidatorPort, SchemaValidatorPort

logger = structlog.get_logger()


class ValidationContext(BaseModel):
    """Extra data sent with the entity; ``current_data`` is the version being replaced."""

    model_config = ConfigDict(frozen=True)

    current_data: Experiment | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.current_data is None:
            return {}
        return {"current_data": self.current_data.model_dump(mode="json")}


class CustomValidator:
    def __init__(
        self,
        schema_validator: SchemaValidatorPort,
        external_validator: ExternalValidatorPort,
    ) -> None:
        self._schema_validator = schema_validator
        self._external_validator = external_validator

    async def _validate_treatment(self, treatment: Treatment, settings: ProjectSettings) -> None:
        await asyncio.to_thread(
            self._schema_validator.validate,
            treatment.configuration,
            settings.treatment_schema,
        )

    async def run(
        self,
        experiment: Experiment,
        settings: ProjectSettings,
        context: ValidationContext,
        operation: OperationType,
    ) -> None:
        """Validate *experiment*; raise the first error any check produces."""
        start = time.monotonic()
        try:
            async with asyncio.TaskGroup() as tg:
                for treatment in experiment.treatments:
                    tg.create_task(self._validate_treatment(treatment, settings))
                tg.create_task(
                    self._external_validator.validate(
                        operation,
                        EXPERIMENT_ENTITY,
                        experiment,
                        context.to_payload(),
                        settings.validation_url,
                    )
                )
        except ExceptionGroup as group:
            custom_validation_failures_total.labels(operation=operation.value).inc()
            first = group.exceptions[0]
            logger.info(
                "Custom validation failed",
                project_id=settings.project_id,
                experiment=experiment.name,
                error=str(first),
            )
            raise first from None
        finally:
            custom_validation_duration_seconds.labels(operation=operation.value).observe(
                time.monotonic() - start
            )
