"""Experiment service: listing, writes and the orthogonality gate in front of them.

Every write follows read -> validate -> write -> publish. Validation
failures abort before anything is written. The history snapshot and the
new version are committed together; a publish failure after the commit is
reported to the caller, not retried.

The service is synchronous (FastAPI runs its routes in the threadpool);
only the custom validation fan-out runs on a short-lived event loop.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from xpmanager.errors import BadInputError, NotFoundError
from xpmanager.logging import bound_project_context
from xpmanager.metrics import experiment_mutations_total
from xpmanager.models.experiment import (
    Experiment,
    ExperimentStatus,
    OperationType,
)
from xpmanager.models.filters import ExperimentFilter
from xpmanager.models.pagination import PaginationOptions
from xpmanager.orthogonality.retriever import CandidateRetriever
from xpmanager.orthogonality.validator import (
    OrthogonalityValidator,
    validate_experiment_segmenters_exist,
)
from xpmanager.validation.custom import CustomValidator, ValidationContext

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from xpmanager.models.experiment import ExperimentSegmentRaw, ExperimentTier
    from xpmanager.models.pagination import Paging
    from xpmanager.models.project import ProjectSettings
    from xpmanager.models.requests import CreateExperimentRequest, UpdateExperimentRequest
    from xpmanager.protocols import (
        DatabasePort,
        ExternalValidatorPort,
        MessagePublisherPort,
        SchemaValidatorPort,
        SegmenterPort,
    )

logger = structlog.get_logger()


class ExperimentService:
    def __init__(
        self,
        db: DatabasePort,
        segmenters: SegmenterPort,
        schema_validator: SchemaValidatorPort,
        external_validator: ExternalValidatorPort,
        publisher: MessagePublisherPort,
    ) -> None:
        self._db = db
        self._segmenters = segmenters
        self._publisher = publisher
        self._retriever = CandidateRetriever(db)
        self._orthogonality = OrthogonalityValidator(segmenters)
        self._custom = CustomValidator(schema_validator, external_validator)

    # --- Reads ---

    def list_experiments(
        self, settings: ProjectSettings, filters: ExperimentFilter
    ) -> tuple[list[Experiment], Paging | None]:
        filters.projected_columns()
        experiments, paging = self._db.list_experiments(
            settings.project_id, self._normalise_segment_filter(settings, filters)
        )
        return [self._to_raw(settings, e) for e in experiments], paging

    def list_all_experiments(
        self, settings: ProjectSettings, filters: ExperimentFilter
    ) -> list[Experiment]:
        """Every experiment matching *filters*, regardless of page boundaries."""
        experiments = self._retriever.fetch_all(
            settings.project_id, self._normalise_segment_filter(settings, filters)
        )
        return [self._to_raw(settings, e) for e in experiments]

    def get_experiment(self, settings: ProjectSettings, experiment_id: int) -> Experiment:
        return self._to_raw(settings, self._get_db_record(settings.project_id, experiment_id))

    def list_experiment_history(
        self, settings: ProjectSettings, experiment_id: int
    ) -> list[Experiment]:
        self._get_db_record(settings.project_id, experiment_id)
        return [
            self._to_raw(settings, h.snapshot)
            for h in self._db.list_experiment_history(experiment_id)
        ]

    # --- Writes ---

    def create_experiment(
        self, settings: ProjectSettings, body: CreateExperimentRequest
    ) -> Experiment:
        with bound_project_context(settings.project_id, experiment=body.name):
            self._segmenters.validate_experiment_segment(settings, body.segment)
            self._ensure_name_available(settings.project_id, body.name)

            if body.status == ExperimentStatus.ACTIVE:
                self._validate_orthogonality_in_duration(
                    None, settings, body.segment, body.tier, body.start_time, body.end_time
                )
                validate_experiment_segmenters_exist(
                    body.name, body.segment, self._segmenters.segmenter_names(settings)
                )

            experiment = Experiment(
                project_id=settings.project_id,
                name=body.name,
                description=body.description,
                tier=body.tier,
                type=body.type,
                interval=body.interval,
                status=body.status,
                start_time=body.start_time,
                end_time=body.end_time,
                segment=body.segment,
                treatments=body.treatments,
                updated_by=body.updated_by,
                version=1,
            )
            asyncio.run(
                self.run_custom_validation(
                    experiment, settings, ValidationContext(), OperationType.CREATE
                )
            )

            saved = self._db.create_experiment(self._to_storage(settings, experiment))
            return self._committed("create", OperationType.CREATE.value, settings, saved)

    def update_experiment(
        self,
        settings: ProjectSettings,
        experiment_id: int,
        body: UpdateExperimentRequest,
    ) -> Experiment:
        with bound_project_context(settings.project_id, experiment_id=experiment_id):
            self._segmenters.validate_experiment_segment(settings, body.segment)
            current = self._get_db_record(settings.project_id, experiment_id)

            if body.status == ExperimentStatus.ACTIVE:
                self._validate_orthogonality_in_duration(
                    experiment_id,
                    settings,
                    body.segment,
                    body.tier,
                    body.start_time,
                    body.end_time,
                )
                validate_experiment_segmenters_exist(
                    current.name, body.segment, self._segmenters.segmenter_names(settings)
                )

            if body.type != current.type:
                raise BadInputError("experiment type cannot be changed")

            current_raw = self._to_raw(settings, current)
            updated = current_raw.model_copy(
                update={
                    "description": body.description,
                    "interval": body.interval,
                    "treatments": body.treatments,
                    "segment": body.segment,
                    "status": body.status,
                    "start_time": body.start_time,
                    "end_time": body.end_time,
                    "tier": body.tier,
                    "updated_by": body.updated_by,
                    "version": current.version + 1,
                }
            )
            asyncio.run(
                self.run_custom_validation(
                    updated,
                    settings,
                    ValidationContext(current_data=current_raw),
                    OperationType.UPDATE,
                )
            )

            saved = self._db.update_experiment(
                self._to_storage(settings, updated), history_of=current
            )
            return self._committed("update", OperationType.UPDATE.value, settings, saved)

    def enable_experiment(self, settings: ProjectSettings, experiment_id: int) -> Experiment:
        with bound_project_context(settings.project_id, experiment_id=experiment_id):
            current = self._get_db_record(settings.project_id, experiment_id)
            if current.status == ExperimentStatus.ACTIVE:
                raise BadInputError(f"experiment id {experiment_id} is already active")

            raw = self._to_raw(settings, current)
            try:
                validate_experiment_segmenters_exist(
                    raw.name, raw.segment, self._segmenters.segmenter_names(settings)
                )
            except BadInputError as exc:
                raise BadInputError(
                    f"Error validating segmenters required for enabling experiment: {exc}"
                ) from exc

            self._validate_orthogonality_in_duration(
                experiment_id,
                settings,
                raw.segment,
                raw.tier,
                raw.start_time,
                raw.end_time,
            )

            enabled = current.model_copy(
                update={"status": ExperimentStatus.ACTIVE, "version": current.version + 1}
            )
            saved = self._db.update_experiment(enabled, history_of=current)
            return self._committed("update", "enable", settings, saved)

    def disable_experiment(self, settings: ProjectSettings, experiment_id: int) -> Experiment:
        """Deactivate an experiment; a withdrawn experiment cannot conflict, so no checks run."""
        with bound_project_context(settings.project_id, experiment_id=experiment_id):
            current = self._get_db_record(settings.project_id, experiment_id)
            if current.status == ExperimentStatus.INACTIVE:
                raise BadInputError(f"experiment id {experiment_id} is already inactive")

            disabled = current.model_copy(
                update={"status": ExperimentStatus.INACTIVE, "version": current.version + 1}
            )
            saved = self._db.update_experiment(disabled, history_of=current)
            return self._committed("update", "disable", settings, saved)

    # --- Project-wide validation ---

    def validate_pairwise_experiment_orthogonality(
        self,
        settings: ProjectSettings,
        experiments: Sequence[Experiment],
        segmenters: Sequence[str],
    ) -> None:
        self._orthogonality.validate_pairwise(settings.project_id, experiments, segmenters)

    def validate_project_experiment_segmenters_exist(
        self,
        settings: ProjectSettings,
        experiments: Sequence[Experiment],
        segmenters: Sequence[str],
    ) -> None:
        self._orthogonality.validate_segmenters_exist(experiments, frozenset(segmenters))

    def validate_project(self, settings: ProjectSettings) -> int:
        """Re-check every active experiment of the project; returns how many were checked."""
        active = self.list_all_experiments(
            settings, ExperimentFilter(status=ExperimentStatus.ACTIVE)
        )
        names = sorted(self._segmenters.segmenter_names(settings))
        self.validate_project_experiment_segmenters_exist(settings, active, names)
        self.validate_pairwise_experiment_orthogonality(settings, active, names)
        return len(active)

    async def run_custom_validation(
        self,
        experiment: Experiment,
        settings: ProjectSettings,
        context: ValidationContext,
        operation: OperationType,
    ) -> None:
        await self._custom.run(experiment, settings, context, operation)

    # --- Helpers ---

    def _get_db_record(self, project_id: int, experiment_id: int) -> Experiment:
        experiment = self._db.get_experiment(project_id, experiment_id)
        if experiment is None:
            raise NotFoundError(
                f"experiment id {experiment_id} not found in project {project_id}"
            )
        return experiment

    def _ensure_name_available(self, project_id: int, name: str) -> None:
        existing, _ = self._db.list_experiments(
            project_id,
            ExperimentFilter(name=name, pagination=PaginationOptions(page=1, page_size=1)),
        )
        if existing:
            raise BadInputError(f"experiment name {name!r} already exists in project {project_id}")

    def _validate_orthogonality_in_duration(
        self,
        experiment_id: int | None,
        settings: ProjectSettings,
        segment: ExperimentSegmentRaw,
        tier: ExperimentTier,
        start_time: datetime,
        end_time: datetime,
    ) -> None:
        candidates = self._retriever.fetch_all(
            settings.project_id,
            ExperimentFilter(
                status=ExperimentStatus.ACTIVE,
                tier=tier,
                start_time=start_time,
                end_time=end_time,
            ),
        )
        self._orthogonality.validate_against(
            settings.project_id,
            experiment_id,
            self._segmenters.to_storage_schema(segment, settings.segmenter_types),
            tier,
            candidates,
            sorted(self._segmenters.segmenter_names(settings)),
        )

    def _normalise_segment_filter(
        self, settings: ProjectSettings, filters: ExperimentFilter
    ) -> ExperimentFilter:
        if not filters.segment:
            return filters
        storage = self._segmenters.to_storage_schema(filters.segment, settings.segmenter_types)
        return filters.model_copy(update={"segment": storage})

    def _to_storage(self, settings: ProjectSettings, experiment: Experiment) -> Experiment:
        storage = self._segmenters.to_storage_schema(experiment.segment, settings.segmenter_types)
        return experiment.model_copy(update={"segment": storage})

    def _to_raw(self, settings: ProjectSettings, experiment: Experiment) -> Experiment:
        raw = self._segmenters.to_raw_schema(experiment.segment, settings.segmenter_types)
        return experiment.model_copy(update={"segment": raw})

    def _committed(
        self, event: str, operation: str, settings: ProjectSettings, saved: Experiment
    ) -> Experiment:
        experiment_mutations_total.labels(operation=operation).inc()
        result = self._to_raw(settings, saved)
        logger.info(
            "Experiment saved",
            event_type=event,
            experiment_id=result.id,
            version=result.version,
            status=result.status.value,
        )
        self._publisher.publish(event, result)
        return result
