"""Tests for segmenter value checks, schema conversion and audience intersection."""

from __future__ import annotations

import pytest

from xpmanager.errors import BadInputError
from xpmanager.models.project import ProjectSettings, SegmenterConfig, SegmenterType
from xpmanager.segmenters import SegmenterService

TYPES = {
    "country": SegmenterType.STRING,
    "days_of_week": SegmenterType.INTEGER,
    "ratio": SegmenterType.REAL,
    "is_member": SegmenterType.BOOL,
}


@pytest.fixture()
def typed_project() -> ProjectSettings:
    return ProjectSettings(
        project_id=1,
        segmenters=[SegmenterConfig(name=n, type=t) for n, t in TYPES.items()],
    )


class TestValidateExperimentSegment:
    def test_valid_values(self, typed_project: ProjectSettings):
        SegmenterService().validate_experiment_segment(
            typed_project,
            {"country": ["SG"], "days_of_week": [1, 2], "ratio": [0.5, 1], "is_member": [True]},
        )

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("country", 1),
            ("days_of_week", "1"),
            ("days_of_week", True),
            ("ratio", "0.5"),
            ("is_member", 1),
        ],
    )
    def test_wrong_type_rejected(self, typed_project: ProjectSettings, name, value):
        with pytest.raises(BadInputError, match=f"segmenter {name} expects"):
            SegmenterService().validate_experiment_segment(typed_project, {name: [value]})

    def test_duplicate_values_rejected(self, typed_project: ProjectSettings):
        with pytest.raises(BadInputError, match="duplicate values"):
            SegmenterService().validate_experiment_segment(typed_project, {"country": ["SG", "SG"]})

    def test_unknown_segmenter_left_to_existence_check(self, typed_project: ProjectSettings):
        SegmenterService().validate_experiment_segment(typed_project, {"zone": ["north"]})


class TestSchemaConversion:
    def test_to_storage_schema(self):
        storage = SegmenterService().to_storage_schema(
            {"country": ["SG"], "days_of_week": [1], "ratio": [1, 0.5], "is_member": [False]},
            TYPES,
        )
        assert storage == {
            "country": ["SG"],
            "days_of_week": ["1"],
            "ratio": ["1.0", "0.5"],
            "is_member": ["false"],
        }

    def test_text_filter_values_read_as_segmenter_type(self):
        storage = SegmenterService().to_storage_schema(
            {"country": ["1"], "days_of_week": ["2"], "ratio": ["1", "0.5"], "is_member": ["true"]},
            TYPES,
        )
        assert storage == {
            "country": ["1"],
            "days_of_week": ["2"],
            "ratio": ["1.0", "0.5"],
            "is_member": ["true"],
        }

    def test_text_filter_value_of_wrong_type(self):
        with pytest.raises(BadInputError, match="value 'yes' for segmenter is_member is not a valid bool"):
            SegmenterService().to_storage_schema({"is_member": ["yes"]}, TYPES)

    def test_to_raw_schema(self):
        raw = SegmenterService().to_raw_schema(
            {"country": ["SG"], "days_of_week": ["1"], "ratio": ["1.0"], "is_member": ["true"]},
            TYPES,
        )
        assert raw == {"country": ["SG"], "days_of_week": [1], "ratio": [1.0], "is_member": [True]}

    def test_unconfigured_segmenter_stays_string(self):
        assert SegmenterService().to_raw_schema({"zone": ["7"]}, TYPES) == {"zone": ["7"]}

    def test_corrupt_stored_value(self):
        with pytest.raises(BadInputError, match="not a valid integer"):
            SegmenterService().to_raw_schema({"days_of_week": ["monday"]}, TYPES)


class TestSegmentOrthogonality:
    def test_disjoint_on_one_dimension_passes(self, make_exp):
        other = make_exp("other", segment={"country": ["SG"], "days_of_week": ["1"]}, experiment_id=2)
        SegmenterService().validate_segment_orthogonality(
            1, ["country", "days_of_week"], {"country": ["SG"], "days_of_week": ["2"]}, [other]
        )

    def test_overlap_on_every_dimension_fails(self, make_exp):
        other = make_exp("other", segment={"country": ["SG", "ID"]}, experiment_id=2)
        with pytest.raises(BadInputError) as exc_info:
            SegmenterService().validate_segment_orthogonality(
                1, ["country", "days_of_week"], {"country": ["ID"]}, [other]
            )
        assert "experiment ID 2 (other)" in str(exc_info.value)
        assert "overlapping values on segmenters: country" in str(exc_info.value)

    def test_empty_list_counts_as_untargeted(self, make_exp):
        other = make_exp("other", segment={"country": []}, experiment_id=2)
        with pytest.raises(BadInputError):
            SegmenterService().validate_segment_orthogonality(
                1, ["country"], {"country": ["SG"]}, [other]
            )

    def test_no_candidates(self):
        SegmenterService().validate_segment_orthogonality(1, ["country"], {"country": ["SG"]}, [])
