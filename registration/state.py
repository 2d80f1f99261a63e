from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RegistrationStep(str, Enum):
    PERSONAL_INFO = "personal_info"
    PROFESSIONAL_INFO = "professional_info"
    SPECIALTY_SELECTION = "specialty_selection"
    IDENTITY_VERIFICATION = "identity_verification"


STEP_ORDER: List[RegistrationStep] = [
    RegistrationStep.PERSONAL_INFO,
    RegistrationStep.PROFESSIONAL_INFO,
    RegistrationStep.SPECIALTY_SELECTION,
    RegistrationStep.IDENTITY_VERIFICATION,
]


class VerificationChannel(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    DOCUMENT = "document"


class Outcome(str, Enum):
    """
    Result of a gated store operation. Only OK is truthy, so callers that
    just need a yes/no can keep treating it as a boolean.
    """

    OK = "ok"
    NO_SESSION = "no_session"
    ON_COOLDOWN = "on_cooldown"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"
    VALIDATION_FAILED = "validation_failed"
    NO_ADJACENT_STEP = "no_adjacent_step"

    def __bool__(self) -> bool:
        return self is Outcome.OK


class CamelModel(BaseModel):
    """Stored with camelCase keys, constructed with either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WorkingDay(CamelModel):
    is_working_day: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None


def _default_working_hours() -> Dict[str, WorkingDay]:
    weekday = {"is_working_day": True, "start_time": "09:00", "end_time": "17:00"}
    hours = {day: WorkingDay(**weekday) for day in ("monday", "tuesday", "wednesday", "thursday", "friday")}
    hours["saturday"] = WorkingDay(is_working_day=False)
    hours["sunday"] = WorkingDay(is_working_day=False)
    return hours


class RegistrationData(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    password: str = ""
    confirm_password: str = ""

    specialty_id: str = ""
    sub_specialties: List[str] = Field(default_factory=list)
    license_number: str = ""
    license_state: str = ""
    license_expiry: str = ""
    years_of_experience: int = 0
    bio: str = ""
    university: str = ""
    graduation_year: Optional[Union[int, str]] = None
    medical_board: str = ""
    document_type: Optional[str] = None
    document_number: str = ""

    selected_features: List[str] = Field(default_factory=list)
    working_hours: Dict[str, WorkingDay] = Field(default_factory=_default_working_hours)

    @classmethod
    def field_name_for(cls, key: str) -> Optional[str]:
        """Map a camelCase or snake_case key onto the model's field name."""
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return None

    def merged(self, patch: Mapping[str, Any]) -> "RegistrationData":
        """
        Shallow merge: top-level keys in patch replace the current values.
        Unknown keys are dropped.
        """
        update: Dict[str, Any] = {}
        for key, value in patch.items():
            name = self.field_name_for(key)
            if name is not None:
                update[name] = value
        return type(self).model_validate({**self.model_dump(), **update})


class VerificationChannelState(CamelModel):
    is_verified: bool = False
    verified_at: Optional[int] = None
    attempts: int = 0
    last_attempt: Optional[int] = None
    cooldown_until: Optional[int] = None


class DocumentChannelState(VerificationChannelState):
    document_number: Optional[str] = None


class VerificationState(CamelModel):
    email: VerificationChannelState = Field(default_factory=VerificationChannelState)
    phone: VerificationChannelState = Field(default_factory=VerificationChannelState)
    document: DocumentChannelState = Field(default_factory=DocumentChannelState)

    def channel(self, channel: VerificationChannel) -> VerificationChannelState:
        return getattr(self, VerificationChannel(channel).value)

    def verified_flags(self) -> Dict[str, bool]:
        return {c.value: self.channel(c).is_verified for c in VerificationChannel}


class StepValidationRecord(CamelModel):
    is_valid: bool
    validated_at: Optional[int] = None
    errors: List[str] = Field(default_factory=list)


class RegistrationSession(CamelModel):
    id: str
    data: RegistrationData = Field(default_factory=RegistrationData)
    current_step: RegistrationStep = RegistrationStep.PERSONAL_INFO
    completed_steps: List[RegistrationStep] = Field(default_factory=list)
    verification_state: VerificationState = Field(default_factory=VerificationState)
    step_validation_state: Dict[RegistrationStep, StepValidationRecord] = Field(default_factory=dict)
    created_at: int
    last_activity: int
    expires_at: int

    def is_expired(self, now: int) -> bool:
        return self.expires_at <= now

    def to_blob(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_blob(cls, blob: str) -> "RegistrationSession":
        return cls.model_validate_json(blob)


class StepCheckState(BaseModel):
    """Working state of the step validation graph."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    step: str = Field(..., description="Registration step being checked")
    data: Dict[str, Any] = Field(default_factory=dict, description="RegistrationData dumped by field name")
    verified: Dict[str, bool] = Field(default_factory=dict, description="Channel -> isVerified")

    errors: List[str] = Field(default_factory=list)
    is_valid: bool = False
