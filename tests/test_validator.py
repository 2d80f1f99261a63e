import pytest

from config.session import SessionConfig
from registration.graph import StepChecker
from registration.state import RegistrationData, RegistrationStep, StepCheckState
from registration.validator import RegistrationValidator

ALL_VERIFIED = {"email": True, "phone": True, "document": True}


@pytest.fixture
def validator():
    return RegistrationValidator()


@pytest.fixture
def checker(validator):
    return StepChecker(validator)


def _fields(patch):
    return RegistrationData().merged(patch).model_dump()


def test_personal_info_valid(checker, personal_info):
    assert checker.check(RegistrationStep.PERSONAL_INFO, _fields(personal_info), ALL_VERIFIED) == (True, [])


@pytest.mark.parametrize(
    "patch, message",
    [
        ({"firstName": "  "}, "firstName is required."),
        ({"password": "short", "confirmPassword": "short"}, "Password must be at least 8 characters."),
        ({"confirmPassword": "different1"}, "Passwords do not match."),
        ({"email": "ana@example"}, "Email address is not valid."),
        ({"email": "ana @example.com"}, "Email address is not valid."),
        ({"phone": "+5712345678901"}, "Phone number is not valid."),
        ({"phone": "04121234567"}, "Phone number is not valid."),
    ],
)
def test_personal_info_rules(checker, personal_info, patch, message):
    is_valid, errors = checker.check(RegistrationStep.PERSONAL_INFO, _fields({**personal_info, **patch}), ALL_VERIFIED)

    assert is_valid is False
    assert message in errors


@pytest.mark.parametrize("channel", ["email", "phone"])
def test_personal_info_requires_contact_verification(checker, personal_info, channel):
    verified = {**ALL_VERIFIED, channel: False}
    is_valid, errors = checker.check(RegistrationStep.PERSONAL_INFO, _fields(personal_info), verified)

    assert is_valid is False
    assert errors == [f"{channel.capitalize()} verification is not complete."]


def test_professional_info_valid(checker, professional_info):
    assert checker.check("professional_info", _fields(professional_info), ALL_VERIFIED) == (True, [])


@pytest.mark.parametrize(
    "patch, message",
    [
        ({"documentNumber": "V1234567"}, "Document number must be at least 9 characters."),
        ({"bio": "Too short."}, "Bio must be at least 50 characters."),
        ({"graduationYear": None}, "graduationYear is required."),
        ({"medicalBoard": ""}, "medicalBoard is required."),
    ],
)
def test_professional_info_rules(checker, professional_info, patch, message):
    is_valid, errors = checker.check(
        RegistrationStep.PROFESSIONAL_INFO, _fields({**professional_info, **patch}), ALL_VERIFIED
    )

    assert is_valid is False
    assert message in errors


def test_professional_info_requires_document_verification(checker, professional_info):
    verified = {"email": True, "phone": True, "document": False}
    is_valid, errors = checker.check(RegistrationStep.PROFESSIONAL_INFO, _fields(professional_info), verified)

    assert is_valid is False
    assert errors == ["Document verification is not complete."]


def test_specialty_selection(checker):
    assert checker.check(RegistrationStep.SPECIALTY_SELECTION, _fields({"specialtyId": "cardiology"}), {}) == (True, [])
    assert checker.check(RegistrationStep.SPECIALTY_SELECTION, _fields({"specialtyId": " "}), {}) == (
        False,
        ["specialtyId is required."],
    )


def test_identity_verification_always_passes(checker):
    assert checker.check(RegistrationStep.IDENTITY_VERIFICATION, _fields({}), {}) == (True, [])


def test_unknown_step_is_invalid(checker):
    is_valid, errors = checker.check("payment", _fields({}), ALL_VERIFIED)

    assert is_valid is False
    assert errors == ["Unknown registration step: payment"]


def test_phone_pattern_is_configurable(personal_info):
    checker = StepChecker(RegistrationValidator(SessionConfig(phone_pattern=r"^\+57\d{10}$")))
    fields = _fields({**personal_info, "phone": "+573001234567"})

    assert checker.check(RegistrationStep.PERSONAL_INFO, fields, ALL_VERIFIED) == (True, [])


def test_should_complete_routes_on_errors():
    ok = StepCheckState(step="specialty_selection")
    failed = StepCheckState(step="specialty_selection", errors=["specialtyId is required."])

    assert RegistrationValidator.should_complete(ok) == "complete"
    assert RegistrationValidator.should_complete(failed) == "end"
