"""Pydantic models for the patient intake form."""

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator


def _alias(*names: str) -> Any:
    return Field(default="", validation_alias=AliasChoices(*names))


class PersonalInfo(BaseModel):
    """Who the patient is and how to reach them."""

    name: str = ""
    first_name: str = _alias("firstName", "first_name")
    last_name: str = _alias("lastName", "last_name")
    email: str = ""
    phone: str = ""
    dob: str = _alias("dob", "dateOfBirth", "date_of_birth")
    emergency_contact: str = _alias("emergencyContact", "emergency_contact")

    @field_validator("emergency_contact", mode="before")
    @classmethod
    def _flatten_contact(cls, value: Any) -> Any:
        # Some forms send {"name": ..., "phone": ...}
        if isinstance(value, dict):
            name = value.get("name", "")
            phone = value.get("phone", "")
            return f"{name} ({phone})" if phone else name
        return value

    @model_validator(mode="after")
    def _complete_names(self) -> "PersonalInfo":
        self.email = self.email.strip()
        if not self.email or "@" not in self.email:
            raise ValueError("a valid email address is required")

        if not self.name:
            self.name = f"{self.first_name} {self.last_name}".strip()
        if not self.name.strip():
            raise ValueError("patient name is required")
        if not self.first_name:
            first, _, last = self.name.strip().partition(" ")
            self.first_name = first
            self.last_name = self.last_name or last.strip()
        return self


class HealthInfo(BaseModel):
    chief_complaint: str = _alias("chiefComplaint", "primaryConcern", "chief_complaint", "reason")
    symptoms: str = ""
    duration: str = ""
    severity: str = ""
    medications: str = ""
    allergies: str = ""
    medical_history: str = _alias("medicalHistory", "medical_history")

    @field_validator("symptoms", "medications", "allergies", mode="before")
    @classmethod
    def _join_lists(cls, value: Any) -> Any:
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        return value


class Consents(BaseModel):
    """Consent checkboxes and the typed signature."""

    hipaa: bool = Field(default=False, validation_alias=AliasChoices("hipaa", "hipaaConsent"))
    telehealth: bool = Field(
        default=False, validation_alias=AliasChoices("telehealth", "telehealthConsent")
    )
    recording: bool = Field(
        default=False, validation_alias=AliasChoices("recording", "recordingConsent")
    )
    signature: str = ""


class PatientIntake(BaseModel):
    """Everything the patient typed into the booking form."""

    personal: PersonalInfo
    health: HealthInfo = HealthInfo()
    consents: Consents = Consents()
