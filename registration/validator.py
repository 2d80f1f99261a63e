import re
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from pydantic.alias_generators import to_camel

from config.session import SessionConfig
from registration.state import RegistrationStep, StepCheckState, VerificationChannel

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REQUIRED_FIELDS: Dict[RegistrationStep, Tuple[str, ...]] = {
    RegistrationStep.PERSONAL_INFO: (
        "first_name",
        "last_name",
        "email",
        "phone",
        "password",
        "confirm_password",
    ),
    RegistrationStep.PROFESSIONAL_INFO: (
        "document_number",
        "university",
        "graduation_year",
        "medical_board",
        "bio",
    ),
    RegistrationStep.SPECIALTY_SELECTION: ("specialty_id",),
    RegistrationStep.IDENTITY_VERIFICATION: (),
}

# Channels that must already be verified before a step counts as valid.
REQUIRED_CHANNELS: Dict[RegistrationStep, Tuple[VerificationChannel, ...]] = {
    RegistrationStep.PERSONAL_INFO: (VerificationChannel.EMAIL, VerificationChannel.PHONE),
    RegistrationStep.PROFESSIONAL_INFO: (VerificationChannel.DOCUMENT,),
}


def _is_blank(value: Any) -> bool:
    if value is None or value is False or value == 0:
        return True
    return str(value).strip() == ""


def _as_step(step: Any) -> Optional[RegistrationStep]:
    try:
        return RegistrationStep(step)
    except ValueError:
        return None


class RegistrationValidator:
    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self.phone_pattern = re.compile(self.config.phone_pattern)

    def field_errors(self, step: Any, data: Mapping[str, Any]) -> List[str]:
        parsed = _as_step(step)
        if parsed is None:
            return [f"Unknown registration step: {step}"]

        errors: List[str] = []
        for field in REQUIRED_FIELDS[parsed]:
            if _is_blank(data.get(field)):
                errors.append(f"{to_camel(field)} is required.")

        if parsed is RegistrationStep.PERSONAL_INFO:
            errors.extend(self._personal_info_errors(data))
        elif parsed is RegistrationStep.PROFESSIONAL_INFO:
            errors.extend(self._professional_info_errors(data))

        return errors

    def _personal_info_errors(self, data: Mapping[str, Any]) -> List[str]:
        errors: List[str] = []
        password = data.get("password") or ""

        if len(password) < self.config.min_password_length:
            errors.append(f"Password must be at least {self.config.min_password_length} characters.")
        if password != (data.get("confirm_password") or ""):
            errors.append("Passwords do not match.")
        if not EMAIL_PATTERN.match(data.get("email") or ""):
            errors.append("Email address is not valid.")
        if not self.phone_pattern.match(data.get("phone") or ""):
            errors.append("Phone number is not valid.")

        return errors

    def _professional_info_errors(self, data: Mapping[str, Any]) -> List[str]:
        errors: List[str] = []

        if len(data.get("document_number") or "") < self.config.min_document_length:
            errors.append(f"Document number must be at least {self.config.min_document_length} characters.")
        if len(data.get("bio") or "") < self.config.min_bio_length:
            errors.append(f"Bio must be at least {self.config.min_bio_length} characters.")

        return errors

    @staticmethod
    def verification_errors(step: Any, verified: Mapping[str, bool]) -> List[str]:
        parsed = _as_step(step)
        if parsed is None:
            return []

        return [
            f"{channel.value.capitalize()} verification is not complete."
            for channel in REQUIRED_CHANNELS.get(parsed, ())
            if not verified.get(channel.value, False)
        ]

    # graph nodes

    def check_fields(self, state: StepCheckState) -> Dict[str, Any]:
        return {"errors": self.field_errors(state.step, state.data)}

    def check_verification(self, state: StepCheckState) -> Dict[str, Any]:
        return {"errors": list(state.errors) + self.verification_errors(state.step, state.verified)}

    @staticmethod
    def should_complete(state: StepCheckState) -> Literal["end", "complete"]:
        return "complete" if len(state.errors) == 0 else "end"
