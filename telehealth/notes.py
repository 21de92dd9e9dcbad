"""Intake records stored in free-text note fields.

The scheduling platform only offers free-text notes on customers and
bookings, so the intake form is written there as a block of ``KEY: value``
lines::

    --- TELEHEALTH INTAKE ---
    RECORDED: 2025-06-02T13:05:00+00:00
    ACCESS CODE: 042917
    SERVICE: Follow-up Consultation
    NAME: Jane Doe
    EMAIL: jane@example.com
    ...
    HIPAA CONSENT: AGREED
    SIGNATURE: Jane Doe
    --- END INTAKE ---

Labels always appear in ``FIELDS`` order.  Backslashes, newlines and
carriage returns in values are escaped as ``\\\\``, ``\\n`` and ``\\r``
so each value stays on one line.  ``parse_intake_blocks`` is the exact
inverse of ``render_intake_block`` and ignores any text outside blocks.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, fields
from datetime import datetime, timezone

from telehealth.models.intake import PatientIntake

BLOCK_START = "--- TELEHEALTH INTAKE ---"
BLOCK_END = "--- END INTAKE ---"

# Square rejects booking notes longer than this
NOTE_MAX_CHARS = 4096

AGREED = "AGREED"
NOT_AGREED = "NOT AGREED"

FIELDS: list[tuple[str, str]] = [
    ("recorded_at", "RECORDED"),
    ("access_code", "ACCESS CODE"),
    ("service", "SERVICE"),
    ("name", "NAME"),
    ("email", "EMAIL"),
    ("phone", "PHONE"),
    ("dob", "DOB"),
    ("emergency_contact", "EMERGENCY CONTACT"),
    ("chief_complaint", "CHIEF COMPLAINT"),
    ("symptoms", "SYMPTOMS"),
    ("duration", "DURATION"),
    ("severity", "SEVERITY"),
    ("medications", "MEDICATIONS"),
    ("allergies", "ALLERGIES"),
    ("medical_history", "MEDICAL HISTORY"),
    ("hipaa", "HIPAA CONSENT"),
    ("telehealth", "TELEHEALTH CONSENT"),
    ("recording", "RECORDING CONSENT"),
    ("signature", "SIGNATURE"),
]

_LABEL_TO_ATTR = {label: attr for attr, label in FIELDS}
_UNESCAPE = re.compile(r"\\(.)")


@dataclass
class IntakeNote:
    """Flattened intake form plus booking metadata."""

    recorded_at: str = ""
    access_code: str = ""
    service: str = ""
    name: str = ""
    email: str = ""
    phone: str = ""
    dob: str = ""
    emergency_contact: str = ""
    chief_complaint: str = ""
    symptoms: str = ""
    duration: str = ""
    severity: str = ""
    medications: str = ""
    allergies: str = ""
    medical_history: str = ""
    hipaa: bool = False
    telehealth: bool = False
    recording: bool = False
    signature: str = ""

    @classmethod
    def from_intake(
        cls,
        intake: PatientIntake,
        access_code: str = "",
        service: str = "",
        recorded_at: datetime | None = None,
    ) -> "IntakeNote":
        recorded = recorded_at or datetime.now(tz=timezone.utc)
        p, h, c = intake.personal, intake.health, intake.consents
        return cls(
            recorded_at=recorded.isoformat(timespec="seconds"),
            access_code=access_code,
            service=service,
            name=p.name,
            email=p.email,
            phone=p.phone,
            dob=p.dob,
            emergency_contact=p.emergency_contact,
            chief_complaint=h.chief_complaint,
            symptoms=h.symptoms,
            duration=h.duration,
            severity=h.severity,
            medications=h.medications,
            allergies=h.allergies,
            medical_history=h.medical_history,
            hipaa=c.hipaa,
            telehealth=c.telehealth,
            recording=c.recording,
            signature=c.signature,
        )


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace("\r", "\\r")


def _unescape(value: str) -> str:
    return _UNESCAPE.sub(lambda m: {"n": "\n", "r": "\r"}.get(m.group(1), m.group(1)), value)


def render_intake_block(note: IntakeNote) -> str:
    lines = [BLOCK_START]
    for attr, label in FIELDS:
        value = getattr(note, attr)
        if isinstance(value, bool):
            text = AGREED if value else NOT_AGREED
        else:
            text = _escape(value)
        lines.append(f"{label}: {text}")
    lines.append(BLOCK_END)
    return "\n".join(lines)


def parse_intake_blocks(text: str) -> list[IntakeNote]:
    """Return every intake block found in ``text``, oldest first."""
    bool_attrs = {f.name for f in fields(IntakeNote) if f.type in ("bool", bool)}
    notes: list[IntakeNote] = []
    current: dict[str, object] | None = None

    for raw_line in (text or "").split("\n"):
        line = raw_line.rstrip("\r")
        if line == BLOCK_START:
            current = {}
        elif line == BLOCK_END:
            if current is not None:
                notes.append(IntakeNote(**current))
            current = None
        elif current is not None:
            label, sep, rest = line.partition(":")
            attr = _LABEL_TO_ATTR.get(label)
            if not sep or attr is None:
                continue
            value = rest[1:] if rest.startswith(" ") else rest
            if attr in bool_attrs:
                current[attr] = value == AGREED
            else:
                current[attr] = _unescape(value)

    return notes


def parse_latest_intake(text: str) -> IntakeNote | None:
    notes = parse_intake_blocks(text)
    return notes[-1] if notes else None


def compose_customer_note(
    existing: str,
    block: str,
    policy: str = "append",
    max_chars: int = 4096,
) -> str:
    """Combine a customer's existing note with a new intake block.

    ``append`` keeps prior visits (each block carries its own RECORDED
    timestamp) and drops the oldest blocks once ``max_chars`` is exceeded.
    ``overwrite`` keeps only the new block.
    """
    if policy == "overwrite" or not (existing or "").strip():
        return block

    note = f"{existing.rstrip()}\n\n{block}"
    while len(note) > max_chars:
        next_start = note.find(BLOCK_START, 1)
        if next_start == -1:
            break
        note = note[next_start:]
    return note


def render_patient_note(note: IntakeNote) -> str:
    """Short note visible to the patient on the appointment."""
    lines = [
        f"Chief complaint: {note.chief_complaint or 'Not provided'}",
        f"Duration: {note.duration or 'Not provided'}",
        f"Symptoms: {note.symptoms or 'Not provided'}",
    ]
    if note.access_code:
        lines.append(f"Access code: {note.access_code}")
    return "\n".join(lines)


def render_provider_note(note: IntakeNote, video_call_url: str = "") -> str:
    """Full intake record plus video visit instructions for the provider."""
    if video_call_url:
        video = f"VIDEO VISIT: Join at {video_call_url} a few minutes before the start time."
    else:
        video = "VIDEO VISIT: The video link will be sent to the patient separately."
    return f"{render_intake_block(note)}\n\n{video}"


def generate_access_code() -> str:
    """Random 6-digit code, zero padded."""
    return f"{secrets.randbelow(1_000_000):06d}"
