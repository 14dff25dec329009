"""Port interfaces (Protocols) for the collaborators the services depend on."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from xpmanager.models.experiment import (
        Experiment,
        ExperimentHistory,
        ExperimentSegment,
        ExperimentSegmentRaw,
        OperationType,
    )
    from xpmanager.models.filters import ExperimentFilter
    from xpmanager.models.pagination import Paging
    from xpmanager.models.project import ProjectSettings, SegmenterType


@runtime_checkable
class ExperimentListingPort(Protocol):
    """Paginated experiment listing.

    Must return paging metadata whenever the filter is paginated.
    """

    def list_experiments(
        self, project_id: int, filters: ExperimentFilter
    ) -> tuple[list[Experiment], Paging | None]: ...


@runtime_checkable
class DatabasePort(ExperimentListingPort, Protocol):
    """Interface for experiment, history and project settings persistence."""

    def init_schema(self) -> None: ...
    def close(self) -> None: ...
    def get_experiment(self, project_id: int, experiment_id: int) -> Experiment | None: ...
    def create_experiment(self, experiment: Experiment) -> Experiment: ...
    def update_experiment(
        self, experiment: Experiment, history_of: Experiment | None = None
    ) -> Experiment: ...
    def list_experiment_history(self, experiment_id: int) -> list[ExperimentHistory]: ...
    def get_project_settings(self, project_id: int) -> ProjectSettings | None: ...
    def save_project_settings(self, settings: ProjectSettings) -> ProjectSettings: ...


@runtime_checkable
class SegmenterPort(Protocol):
    """Segmenter capability: configured names, segment checks and schema conversion."""

    def segmenter_names(self, settings: ProjectSettings) -> frozenset[str]: ...

    def validate_experiment_segment(
        self, settings: ProjectSettings, segment: ExperimentSegmentRaw
    ) -> None: ...

    def validate_segment_orthogonality(
        self,
        project_id: int,
        segmenters: Sequence[str],
        segment: ExperimentSegmentRaw,
        experiments: Sequence[Experiment],
    ) -> None: ...

    def to_storage_schema(
        self, segment: ExperimentSegmentRaw, types: Mapping[str, SegmenterType]
    ) -> ExperimentSegment: ...

    def to_raw_schema(
        self, segment: ExperimentSegment, types: Mapping[str, SegmenterType]
    ) -> ExperimentSegmentRaw: ...


@runtime_checkable
class SchemaValidatorPort(Protocol):
    def validate(self, config: Mapping[str, Any], schema: Mapping[str, Any] | None) -> None: ...


@runtime_checkable
class ExternalValidatorPort(Protocol):
    async def validate(
        self,
        operation: OperationType,
        entity_type: str,
        entity: Experiment,
        context: Mapping[str, Any],
        url: str | None,
    ) -> None: ...


@runtime_checkable
class MessagePublisherPort(Protocol):
    def publish(self, event: str, experiment: Experiment) -> None: ...
