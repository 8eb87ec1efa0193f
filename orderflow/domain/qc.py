"""Structured QC feedback and rejection-reason rules.

Pure functions, no external dependencies. Feedback is either built from
keyword fields or parsed from the line-oriented text template reviewers
fill in:

    Defect Type: Loose stitching
    Severity: Major
    Location: Left sleeve seam
    Evidence reference: frame 00:42
    Required fix: Re-stitch with double thread
    Notes: optional free text
"""

from dataclasses import asdict, dataclass

FEEDBACK_TEMPLATE = (
    "Defect Type:\n"
    "Severity:\n"
    "Location:\n"
    "Evidence reference:\n"
    "Required fix:\n"
    "Notes:"
)

# Template label -> attribute name, in template order.
FEEDBACK_LABELS: dict[str, str] = {
    "Defect Type:": "defect_type",
    "Severity:": "severity",
    "Location:": "location",
    "Evidence reference:": "evidence_reference",
    "Required fix:": "required_fix",
    "Notes:": "notes",
}

REQUIRED_FEEDBACK_FIELDS: tuple[str, ...] = ("defect_type", "severity", "location", "required_fix")
MIN_FEEDBACK_FIELD_LENGTH = 2


@dataclass
class QCFeedback:
    """Reviewer feedback attached to a QC decision."""

    defect_type: str = ""
    severity: str = ""
    location: str = ""
    evidence_reference: str = ""
    required_fix: str = ""
    notes: str = ""

    @classmethod
    def from_text(cls, text: str) -> "QCFeedback":
        """Parse the text template. Unknown lines are ignored, missing labels stay empty."""
        values: dict[str, str] = {}
        for line in (text or "").splitlines():
            stripped = line.strip()
            for label, attr in FEEDBACK_LABELS.items():
                if stripped.startswith(label):
                    values.setdefault(attr, stripped[len(label):].strip())
                    break
        return cls(**values)

    @classmethod
    def from_dict(cls, data: dict) -> "QCFeedback":
        """Build from keyword fields. Unknown keys and None are ignored.

        Raises:
            ValueError: a known field holds something other than text
        """
        values: dict[str, str] = {}
        for attr in FEEDBACK_LABELS.values():
            value = data.get(attr)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValueError(f"Feedback field '{attr}' must be text")
            values[attr] = value
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_text(self) -> str:
        return "\n".join(
            f"{label} {getattr(self, attr)}".rstrip() for label, attr in FEEDBACK_LABELS.items()
        )

    def missing_fields(self) -> list[str]:
        """Mandatory fields that are absent or shorter than two characters."""
        return [
            name
            for name in REQUIRED_FEEDBACK_FIELDS
            if not isinstance(getattr(self, name), str)
            or len(getattr(self, name).strip()) < MIN_FEEDBACK_FIELD_LENGTH
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


def validate_rejection_reason(reason: str | None, min_length: int = 10) -> str | None:
    """Return a user-facing error for an unusable rejection reason, else None."""
    if reason is None or not reason.strip():
        return "A rejection reason is required"
    if len(reason.strip()) < min_length:
        return f"Rejection reason must be at least {min_length} characters"
    return None


def validate_feedback(feedback: QCFeedback | None) -> str | None:
    """Return a user-facing error for incomplete structured feedback, else None."""
    if feedback is None:
        return "Structured QC feedback is required"
    missing = feedback.missing_fields()
    if missing:
        labels = [label.rstrip(":") for label, attr in FEEDBACK_LABELS.items() if attr in missing]
        return f"Structured QC feedback is missing: {', '.join(labels)}"
    return None
