"""Experiment change publishers.

Every committed mutation is announced once. ``LogPublisher`` writes the
event to the structured log; ``InMemoryPublisher`` keeps events for
inspection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from xpmanager.models.experiment import Experiment

logger = structlog.get_logger()


def to_wire(experiment: Experiment) -> dict[str, Any]:
    """Message payload for an experiment (raw-schema segment, JSON-safe values)."""
    return experiment.model_dump(mode="json", exclude={"created_at"})


class LogPublisher:
    def publish(self, event: str, experiment: Experiment) -> None:
        logger.info(
            "Experiment event published",
            event_type=event,
            project_id=experiment.project_id,
            experiment_id=experiment.id,
            version=experiment.version,
            payload=to_wire(experiment),
        )


class NullPublisher:
    def publish(self, event: str, experiment: Experiment) -> None:
        logger.debug("Experiment event dropped", event_type=event, experiment_id=experiment.id)


@dataclass
class InMemoryPublisher:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def publish(self, event: str, experiment: Experiment) -> None:
        self.events.append((event, to_wire(experiment)))
