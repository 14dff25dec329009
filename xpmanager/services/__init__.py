"""Application services for experiments and project settings."""

from xpmanager.services.experiments import ExperimentService
from xpmanager.services.projects import ProjectSettingsService

__all__ = ["ExperimentService", "ProjectSettingsService"]
