"""End-to-end tests for the experiment and project settings services."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from xpmanager.errors import BadInputError, NotFoundError
from xpmanager.models.experiment import (
    ExperimentStatus,
    ExperimentTier,
    ExperimentType,
    Treatment,
)
from xpmanager.models.filters import ExperimentFilter
from xpmanager.models.project import ProjectSettings, SegmenterConfig, SegmenterType
from xpmanager.models.requests import (
    CreateExperimentRequest,
    ProjectSettingsRequest,
    UpdateExperimentRequest,
)
from xpmanager.segmenters import SegmenterService
from xpmanager.services import ExperimentService
from xpmanager.validation import ExternalValidationClient, TreatmentSchemaValidator

if TYPE_CHECKING:
    from xpmanager.db import Database
    from xpmanager.publisher import InMemoryPublisher
    from xpmanager.services import ProjectSettingsService

T0 = datetime(2030, 1, 1, tzinfo=UTC)
VALIDATION_URL = "https://rules.example.com/validate"


def _body(
    name: str,
    start: float = 0,
    end: float = 10,
    segment: dict | None = None,
    tier: ExperimentTier = ExperimentTier.DEFAULT,
    status: ExperimentStatus = ExperimentStatus.ACTIVE,
    type_: ExperimentType = ExperimentType.AB,
    **extra,
) -> dict:
    return {
        "start_time": T0 + timedelta(hours=start),
        "end_time": T0 + timedelta(hours=end),
        "segment": segment or {},
        "tier": tier,
        "status": status,
        "type": type_,
        "updated_by": "tester",
        **extra,
        **({"name": name} if name else {}),
    }


def _create(
    service: ExperimentService,
    project: ProjectSettings,
    name: str,
    start: float = 0,
    end: float = 10,
    **kwargs,
):
    return service.create_experiment(
        project, CreateExperimentRequest(**_body(name, start, end, **kwargs))
    )


def _update(
    service: ExperimentService,
    project: ProjectSettings,
    experiment_id: int,
    start: float = 0,
    end: float = 10,
    **kwargs,
):
    return service.update_experiment(
        project, experiment_id, UpdateExperimentRequest(**_body("", start, end, **kwargs))
    )


class TestCreateExperiment:
    def test_create(self, service: ExperimentService, project: ProjectSettings, publisher: InMemoryPublisher):
        created = _create(service, project, "checkout", segment={"country": ["SG"], "days_of_week": [1]})

        assert created.id is not None
        assert created.version == 1
        assert created.segment == {"country": ["SG"], "days_of_week": [1]}
        assert publisher.events[0][0] == "create"
        assert publisher.events[0][1]["segment"] == {"country": ["SG"], "days_of_week": [1]}

    def test_create_from_worker_thread(self, service: ExperimentService, project: ProjectSettings):
        with ThreadPoolExecutor(max_workers=1) as pool:
            created = pool.submit(_create, service, project, "checkout", segment={"country": ["SG"]}).result()
        assert created.version == 1

    def test_orthogonal_experiments_coexist(self, service: ExperimentService, project: ProjectSettings):
        _create(service, project, "e1", segment={"country": ["SG"]})
        _create(service, project, "e2", segment={"country": ["ID"]})
        _create(service, project, "e3", segment={"country": ["SG"]}, tier=ExperimentTier.OVERRIDE)

        assert len(service.list_all_experiments(project, ExperimentFilter())) == 3

    def test_conflicting_experiment_rejected_and_not_saved(
        self, service: ExperimentService, project: ProjectSettings, publisher: InMemoryPublisher
    ):
        _create(service, project, "e1", segment={"country": ["SG"]})

        with pytest.raises(BadInputError, match="Segment Orthogonality check failed"):
            _create(service, project, "e4", 5, 15, segment={"country": ["SG"]})

        names = {e.name for e in service.list_all_experiments(project, ExperimentFilter())}
        assert names == {"e1"}
        assert len(publisher.events) == 1

    def test_adjacent_windows_do_not_conflict(self, service: ExperimentService, project: ProjectSettings):
        _create(service, project, "e1", 0, 10, segment={"country": ["SG"]})
        _create(service, project, "e2", 10, 20, segment={"country": ["SG"]})

    def test_inactive_experiment_skips_orthogonality(
        self, service: ExperimentService, project: ProjectSettings
    ):
        _create(service, project, "e1", segment={"country": ["SG"]})
        created = _create(
            service, project, "e2", segment={"country": ["SG"]}, status=ExperimentStatus.INACTIVE
        )
        assert created.status == ExperimentStatus.INACTIVE

    def test_duplicate_name(self, service: ExperimentService, project: ProjectSettings):
        _create(service, project, "checkout", segment={"country": ["SG"]})
        with pytest.raises(BadInputError, match="already exists"):
            _create(service, project, "checkout", segment={"country": ["ID"]})

    def test_active_experiment_needs_known_segmenters(
        self, service: ExperimentService, project: ProjectSettings
    ):
        with pytest.raises(BadInputError, match="requires segmenter: zone"):
            _create(service, project, "checkout", segment={"zone": ["north"]})

    def test_segment_value_type_checked(self, service: ExperimentService, project: ProjectSettings):
        with pytest.raises(BadInputError, match="expects integer"):
            _create(service, project, "checkout", segment={"days_of_week": ["monday"]})

    def test_treatment_schema_enforced(
        self, db: Database, service: ExperimentService, project: ProjectSettings
    ):
        strict = db.save_project_settings(
            project.model_copy(
                update={
                    "treatment_schema": {
                        "type": "object",
                        "properties": {"color": {"type": "string"}},
                        "required": ["color"],
                    }
                }
            )
        )
        with pytest.raises(BadInputError, match="schema validation"):
            _create(
                service,
                strict,
                "checkout",
                treatments=[Treatment(name="control", configuration={"color": 1})],
            )
        assert service.list_all_experiments(strict, ExperimentFilter()) == []

    @respx.mock
    def test_external_rejection_aborts_write(
        self, db: Database, service: ExperimentService, project: ProjectSettings
    ):
        route = respx.post(VALIDATION_URL).mock(return_value=httpx.Response(400, text="nope"))
        with_url = db.save_project_settings(project.model_copy(update={"validation_url": VALIDATION_URL}))

        with pytest.raises(BadInputError, match="Error validating data with validation URL: 400 nope"):
            _create(service, with_url, "checkout")

        assert route.called
        assert service.list_all_experiments(with_url, ExperimentFilter()) == []


class TestUpdateExperiment:
    def test_update_bumps_version_and_records_history(
        self, service: ExperimentService, project: ProjectSettings, publisher: InMemoryPublisher
    ):
        created = _create(service, project, "checkout", segment={"country": ["SG"]})
        updated = _update(service, project, created.id, segment={"country": ["ID"]}, description="v2")

        assert updated.version == 2
        assert updated.description == "v2"
        assert updated.name == "checkout"
        history = service.list_experiment_history(project, created.id)
        assert [h.version for h in history] == [1]
        assert history[0].segment == {"country": ["SG"]}
        assert [e for e, _ in publisher.events] == ["create", "update"]

    def test_update_excludes_itself_from_orthogonality(
        self, service: ExperimentService, project: ProjectSettings
    ):
        created = _create(service, project, "checkout", segment={"country": ["SG"]})
        _update(service, project, created.id, 0, 12, segment={"country": ["SG"]})

    def test_update_into_conflict_rejected(self, service: ExperimentService, project: ProjectSettings):
        _create(service, project, "e1", 0, 10, segment={"country": ["SG"]})
        e2 = _create(service, project, "e2", 10, 20, segment={"country": ["SG"]})

        with pytest.raises(BadInputError, match="experiment ID"):
            _update(service, project, e2.id, 5, 20, segment={"country": ["SG"]})
        assert service.get_experiment(project, e2.id).version == 1

    def test_type_cannot_change(self, service: ExperimentService, project: ProjectSettings):
        created = _create(service, project, "checkout")
        with pytest.raises(BadInputError, match="experiment type cannot be changed"):
            _update(service, project, created.id, type_=ExperimentType.SWITCHBACK, interval=30)

    def test_update_missing(self, service: ExperimentService, project: ProjectSettings):
        with pytest.raises(NotFoundError):
            _update(service, project, 404)


class TestEnableDisable:
    def test_enable_with_missing_segmenter_fails_without_history(
        self, service: ExperimentService, project: ProjectSettings
    ):
        created = _create(
            service, project, "zoned", segment={"zone": ["north"]}, status=ExperimentStatus.INACTIVE
        )

        with pytest.raises(BadInputError) as exc_info:
            service.enable_experiment(project, created.id)
        assert str(exc_info.value) == (
            "Error validating segmenters required for enabling experiment: "
            "experiment zoned requires segmenter: zone"
        )
        assert service.list_experiment_history(project, created.id) == []
        assert service.get_experiment(project, created.id).status == ExperimentStatus.INACTIVE

    def test_enable_into_conflict_rejected(self, service: ExperimentService, project: ProjectSettings):
        _create(service, project, "e1", segment={"country": ["SG"]})
        e5 = _create(
            service, project, "e5", segment={"country": ["SG"]}, status=ExperimentStatus.INACTIVE
        )
        with pytest.raises(BadInputError, match="Segment Orthogonality check failed"):
            service.enable_experiment(project, e5.id)

    def test_enable_then_disable(
        self, service: ExperimentService, project: ProjectSettings, publisher: InMemoryPublisher
    ):
        created = _create(
            service, project, "checkout", segment={"country": ["SG"]}, status=ExperimentStatus.INACTIVE
        )
        enabled = service.enable_experiment(project, created.id)
        disabled = service.disable_experiment(project, created.id)

        assert enabled.status == ExperimentStatus.ACTIVE
        assert enabled.version == 2
        assert disabled.status == ExperimentStatus.INACTIVE
        assert disabled.version == 3
        assert [h.version for h in service.list_experiment_history(project, created.id)] == [1, 2]
        assert [e for e, _ in publisher.events] == ["create", "update", "update"]

    def test_redundant_transitions(self, service: ExperimentService, project: ProjectSettings):
        created = _create(service, project, "checkout")
        with pytest.raises(BadInputError, match="already active"):
            service.enable_experiment(project, created.id)
        service.disable_experiment(project, created.id)
        with pytest.raises(BadInputError, match="already inactive"):
            service.disable_experiment(project, created.id)


class TestListing:
    def test_raw_segment_filter_is_normalised(self, service: ExperimentService, project: ProjectSettings):
        _create(service, project, "monday", segment={"days_of_week": [1]})
        _create(service, project, "tuesday", segment={"days_of_week": [2]})

        experiments, paging = service.list_experiments(
            project, ExperimentFilter(segment={"days_of_week": [1]})
        )
        assert [e.name for e in experiments] == ["monday"]
        assert experiments[0].segment == {"days_of_week": [1]}
        assert paging.total == 1

    def test_text_filter_matches_real_segmenter(self, db: Database, service: ExperimentService):
        scored = db.save_project_settings(
            ProjectSettings(
                project_id=3,
                segmenters=[
                    SegmenterConfig(name="score", type=SegmenterType.REAL),
                    SegmenterConfig(name="is_member", type=SegmenterType.BOOL),
                ],
            )
        )
        _create(service, scored, "high", segment={"score": [1], "is_member": [True]})

        for segment in ({"score": ["1"]}, {"score": ["1.0"]}, {"is_member": ["true"]}):
            experiments, _ = service.list_experiments(scored, ExperimentFilter(segment=segment))
            assert [e.name for e in experiments] == ["high"], segment

    def test_list_all_spans_pages(self, service: ExperimentService, project: ProjectSettings):
        for i in range(25):
            _create(service, project, f"exp-{i}", segment={"days_of_week": [i]})

        everything = service.list_all_experiments(project, ExperimentFilter())
        assert len(everything) == 25
        assert len({e.id for e in everything}) == 25

    def test_unsupported_projection_field(self, service: ExperimentService, project: ProjectSettings):
        with pytest.raises(BadInputError, match="field status is not supported"):
            service.list_experiments(project, ExperimentFilter(fields=("status",)))

    def test_get_missing(self, service: ExperimentService, project: ProjectSettings):
        with pytest.raises(NotFoundError, match="experiment id 5 not found"):
            service.get_experiment(project, 5)


class TestValidateProject:
    def test_consistent_project(self, service: ExperimentService, project: ProjectSettings):
        _create(service, project, "e1", segment={"country": ["SG"]})
        _create(service, project, "e2", segment={"country": ["ID"]})
        _create(service, project, "off", segment={"country": ["SG"]}, status=ExperimentStatus.INACTIVE)

        assert service.validate_project(project) == 2

    def test_detects_conflict_written_behind_its_back(
        self, db: Database, service: ExperimentService, project: ProjectSettings, make_exp
    ):
        first = db.create_experiment(make_exp("e1", segment={"country": ["SG"]}))
        db.create_experiment(make_exp("e2", segment={"country": ["SG"]}))

        with pytest.raises(BadInputError, match="Orthogonality check for experiment ID"):
            service.validate_project(project)
        assert first.id is not None


class TestProjectSettingsService:
    def test_get_missing(self, project_service: ProjectSettingsService):
        with pytest.raises(NotFoundError, match="settings for project id 9 not found"):
            project_service.get_settings(9)

    def test_create(self, project_service: ProjectSettingsService):
        created = project_service.create_settings(
            9, ProjectSettingsRequest(segmenters=[SegmenterConfig(name="country")])
        )
        assert created.project_id == 9
        assert project_service.get_settings(9).segmenter_names == {"country"}

    def test_create_twice(self, project_service: ProjectSettingsService, project: ProjectSettings):
        with pytest.raises(BadInputError, match="already exist"):
            project_service.create_settings(project.project_id, ProjectSettingsRequest())

    def test_removing_segmenter_in_use_rejected(
        self,
        project_service: ProjectSettingsService,
        service: ExperimentService,
        project: ProjectSettings,
    ):
        _create(service, project, "checkout", segment={"country": ["SG"]})

        with pytest.raises(BadInputError, match="requires segmenter: country"):
            project_service.update_settings(
                project.project_id,
                ProjectSettingsRequest(
                    segmenters=[SegmenterConfig(name="days_of_week", type=SegmenterType.INTEGER)]
                ),
            )
        assert project_service.get_settings(project.project_id).segmenter_names == project.segmenter_names

    def test_adding_segmenter_accepted(
        self,
        project_service: ProjectSettingsService,
        service: ExperimentService,
        project: ProjectSettings,
    ):
        _create(service, project, "checkout", segment={"country": ["SG"]})
        updated = project_service.update_settings(
            project.project_id,
            ProjectSettingsRequest(
                segmenters=[*project.segmenters, SegmenterConfig(name="zone")],
                updated_by="admin",
            ),
        )
        assert "zone" in updated.segmenter_names
        assert updated.updated_by == "admin"


class TestEndToEnd:
    def test_tier_scoped_conflict(self, db: Database, service: ExperimentService):
        project = db.save_project_settings(
            ProjectSettings(project_id=2, segmenters=[SegmenterConfig(name="city")])
        )

        def request(name: str, start: datetime, end: datetime, tier: str) -> CreateExperimentRequest:
            return CreateExperimentRequest(
                name=name,
                start_time=start,
                end_time=end,
                segment={"city": ["SG"]},
                status="active",
                tier=tier,
                type="A/B",
            )

        e1 = service.create_experiment(
            project,
            request("E1", datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC), "default"),
        )
        with pytest.raises(BadInputError, match=rf"experiment ID {e1.id} \(E1\)"):
            service.create_experiment(
                project,
                request(
                    "E2", datetime(2024, 1, 15, tzinfo=UTC), datetime(2024, 1, 20, tzinfo=UTC), "default"
                ),
            )
        e3 = service.create_experiment(
            project,
            request(
                "E3", datetime(2024, 1, 15, tzinfo=UTC), datetime(2024, 1, 20, tzinfo=UTC), "override"
            ),
        )
        assert e3.tier == ExperimentTier.OVERRIDE


class FailingPublisher:
    def publish(self, event, experiment):
        raise RuntimeError("bus unavailable")


class TestPublishFailure:
    def test_failure_after_commit_is_reported(self, db: Database, project: ProjectSettings):
        service = ExperimentService(
            db=db,
            segmenters=SegmenterService(),
            schema_validator=TreatmentSchemaValidator(),
            external_validator=ExternalValidationClient(),
            publisher=FailingPublisher(),
        )

        with pytest.raises(RuntimeError, match="bus unavailable"):
            _create(service, project, "checkout")

        # The write itself was committed before publishing.
        assert [e.name for e in service.list_all_experiments(project, ExperimentFilter())] == [
            "checkout"
        ]
