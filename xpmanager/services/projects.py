"""Project settings service."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from xpmanager.errors import BadInputError, NotFoundError
from xpmanager.logging import bound_project_context
from xpmanager.models.experiment import ExperimentStatus, ExperimentStatusFriendly
from xpmanager.models.filters import ExperimentFilter
from xpmanager.models.project import ProjectSettings

if TYPE_CHECKING:
    from xpmanager.models.requests import ProjectSettingsRequest
    from xpmanager.protocols import DatabasePort
    from xpmanager.services.experiments import ExperimentService

logger = structlog.get_logger()


class ProjectSettingsService:
    def __init__(self, db: DatabasePort, experiments: ExperimentService) -> None:
        self._db = db
        self._experiments = experiments

    def get_settings(self, project_id: int) -> ProjectSettings:
        settings = self._db.get_project_settings(project_id)
        if settings is None:
            raise NotFoundError(f"settings for project id {project_id} not found")
        return settings

    def create_settings(self, project_id: int, body: ProjectSettingsRequest) -> ProjectSettings:
        if self._db.get_project_settings(project_id) is not None:
            raise BadInputError(f"settings for project id {project_id} already exist")
        settings = ProjectSettings(project_id=project_id, **body.model_dump())
        logger.info("Project settings created", project_id=project_id)
        return self._db.save_project_settings(settings)

    def update_settings(self, project_id: int, body: ProjectSettingsRequest) -> ProjectSettings:
        """Replace a project's settings.

        A changed segmenter set must still cover every live experiment and
        keep them orthogonal; otherwise the update is rejected.
        """
        current = self.get_settings(project_id)
        updated = ProjectSettings(project_id=project_id, **body.model_dump())

        if updated.segmenters != current.segmenters:
            with bound_project_context(project_id):
                live = self._experiments.list_all_experiments(
                    current,
                    ExperimentFilter(
                        status=ExperimentStatus.ACTIVE,
                        status_friendly=(
                            ExperimentStatusFriendly.SCHEDULED,
                            ExperimentStatusFriendly.RUNNING,
                        ),
                    ),
                )
                names = sorted(updated.segmenter_names)
                self._experiments.validate_project_experiment_segmenters_exist(
                    updated, live, names
                )
                self._experiments.validate_pairwise_experiment_orthogonality(
                    updated, live, names
                )
                logger.info("Segmenter change validated", experiments=len(live))

        return self._db.save_project_settings(updated)
