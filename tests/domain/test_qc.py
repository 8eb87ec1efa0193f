"""Tests for structured QC feedback parsing and validation."""

import pytest

from orderflow.domain.qc import (
    FEEDBACK_TEMPLATE,
    QCFeedback,
    validate_feedback,
    validate_rejection_reason,
)

pytestmark = pytest.mark.unit


FILLED_TEMPLATE = """Defect Type: Loose stitching
Severity: Major
Location: Left sleeve seam
Evidence reference: frame 00:42
Required fix: Re-stitch with double thread
Notes: Affects roughly 1 in 10 pieces"""


def test_parse_filled_template():
    feedback = QCFeedback.from_text(FILLED_TEMPLATE)
    assert feedback.defect_type == "Loose stitching"
    assert feedback.severity == "Major"
    assert feedback.location == "Left sleeve seam"
    assert feedback.evidence_reference == "frame 00:42"
    assert feedback.required_fix == "Re-stitch with double thread"
    assert feedback.notes == "Affects roughly 1 in 10 pieces"
    assert feedback.is_complete


def test_empty_template_reports_every_mandatory_field():
    feedback = QCFeedback.from_text(FEEDBACK_TEMPLATE)
    assert feedback.missing_fields() == ["defect_type", "severity", "location", "required_fix"]
    assert not feedback.is_complete


def test_single_character_field_counts_as_missing():
    feedback = QCFeedback(defect_type="X", severity="Minor", location="Hem", required_fix="Trim")
    assert feedback.missing_fields() == ["defect_type"]


def test_optional_fields_do_not_block_completion():
    feedback = QCFeedback(defect_type="Stain", severity="Minor", location="Front", required_fix="Wash")
    assert feedback.is_complete
    assert validate_feedback(feedback) is None


def test_validate_feedback_lists_missing_labels():
    error = validate_feedback(QCFeedback(defect_type="Stain", severity="Minor"))
    assert error == "Structured QC feedback is missing: Location, Required fix"


def test_validate_feedback_none_is_required_error():
    assert validate_feedback(None) == "Structured QC feedback is required"


def test_text_round_trip_keeps_values():
    feedback = QCFeedback.from_text(FILLED_TEMPLATE)
    assert QCFeedback.from_text(feedback.to_text()) == feedback


def test_from_dict_ignores_unknown_keys_and_none():
    feedback = QCFeedback.from_dict({"defect_type": "Hole", "severity": None, "colour": "red"})
    assert feedback.defect_type == "Hole"
    assert feedback.severity == ""


@pytest.mark.parametrize(
    "reason,ok",
    [
        (None, False),
        ("   ", False),
        ("too short", False),
        ("Wrong shade of navy", True),
        ("  exactly10!  ", True),
    ],
)
def test_validate_rejection_reason(reason, ok):
    assert (validate_rejection_reason(reason) is None) is ok


def test_rejection_reason_minimum_is_configurable():
    assert validate_rejection_reason("short", min_length=3) is None
    assert validate_rejection_reason("short", min_length=20) is not None


@pytest.mark.parametrize("value", [3, ["Major"], {"level": "Major"}])
def test_from_dict_rejects_non_text_fields(value):
    with pytest.raises(ValueError, match="severity"):
        QCFeedback.from_dict({"defect_type": "Hole", "severity": value})


def test_missing_fields_treats_non_text_as_missing():
    feedback = QCFeedback(defect_type="Hole", severity=3, location="Hem", required_fix="Patch")
    assert feedback.missing_fields() == ["severity"]
