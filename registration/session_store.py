"""
Registration session store.

Holds the single in-progress doctor registration: payload, wizard step,
completed steps, verification bookkeeping for the email/phone/document
channels and per-step validation results. Every mutation is persisted to a
BlobStorage and resets the idle timeout.

Gated operations never raise for expected conditions (no session, cooldown,
attempt cap, failed forward validation). They return an Outcome, which is
truthy only when the operation went through.
"""
import logging
import math
import threading
import time
from typing import Any, Callable, List, Mapping, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from config.session import SessionConfig
from persistence.storage import BlobStorage, InMemoryBlobStorage
from registration.graph import StepChecker
from registration.state import (
    STEP_ORDER,
    Outcome,
    RegistrationData,
    RegistrationSession,
    RegistrationStep,
    StepValidationRecord,
    VerificationChannel,
    VerificationChannelState,
)
from registration.timeout import Scheduler, SessionTimeoutManager, TimerHandle
from registration.validator import RegistrationValidator

logger = logging.getLogger(__name__)

SESSION_TIMEOUT_EVENT = "registration-session-timeout"


def now_ms() -> int:
    return int(time.time() * 1000)


def _parse_step(step: Any) -> Optional[RegistrationStep]:
    try:
        return RegistrationStep(step)
    except ValueError:
        logger.debug("unknown registration step %r", step)
        return None


def _parse_channel(channel: Any) -> Optional[VerificationChannel]:
    try:
        return VerificationChannel(channel)
    except ValueError:
        logger.debug("unknown verification channel %r", channel)
        return None


class RegistrationSessionStore:
    """
    Periodic expiry cleanup is not started by the constructor; the host calls
    start_cleanup() once it has a scheduler running, and stop_cleanup() on
    shutdown. Unknown step or channel names are refused like any other unmet
    precondition (VALIDATION_FAILED, False, 0 or None).
    """

    def __init__(
        self,
        storage: Optional[BlobStorage] = None,
        config: Optional[SessionConfig] = None,
        timeout_manager: Optional[SessionTimeoutManager] = None,
        validator: Optional[RegistrationValidator] = None,
        clock: Callable[[], int] = now_ms,
        scheduler: Optional[Scheduler] = None,
    ):
        self.config = config or SessionConfig()
        self.storage = storage if storage is not None else InMemoryBlobStorage()
        self.clock = clock
        self.timeout_manager = timeout_manager or SessionTimeoutManager(
            timeout_seconds=self.config.idle_timeout_seconds,
            scheduler=scheduler,
        )
        self.scheduler = scheduler or self.timeout_manager.scheduler
        self.checker = StepChecker(validator or RegistrationValidator(self.config))

        self._session: Optional[RegistrationSession] = None
        self._lock = threading.RLock()
        self._timeout_listeners: List[Callable[[], None]] = []
        self._cleanup_handle: Optional[TimerHandle] = None

        self._load_session()

    # -- life-cycle -----------------------------------------------------------

    def create_session(self) -> str:
        with self._lock:
            now = self.clock()
            self._session = RegistrationSession(
                id=self._generate_session_id(now),
                created_at=now,
                last_activity=now,
                expires_at=now + self.config.session_ttl_ms,
            )
            self._save_session()
            self.timeout_manager.start_timeout(self._handle_session_timeout)
            logger.info("registration session %s created", self._session.id)
            return self._session.id

    def resume_or_create(self) -> str:
        with self._lock:
            session = self._live_session()
            if session is not None:
                return session.id
            return self.create_session()

    def get_current_session(self) -> Optional[RegistrationSession]:
        session = self._session
        if session is None or session.is_expired(self.clock()):
            return None
        return session

    def get_data(self) -> Optional[RegistrationData]:
        session = self.get_current_session()
        return session.data if session is not None else None

    def extend_session(self) -> Outcome:
        with self._lock:
            if self._live_session() is None:
                return Outcome.NO_SESSION
            self._touch()
            return Outcome.OK

    def clear_session(self) -> None:
        with self._lock:
            self._session = None
            self.timeout_manager.clear_timeout()
            try:
                self.storage.remove(self.config.storage_key)
            except Exception:
                logger.exception("error clearing registration session")

    def purge_expired(self) -> bool:
        with self._lock:
            if self._session is not None and self._session.is_expired(self.clock()):
                logger.info("registration session %s expired, purging", self._session.id)
                self.clear_session()
                return True
            return False

    # -- data -----------------------------------------------------------------

    def update_data(self, patch: Mapping[str, Any]) -> Outcome:
        with self._lock:
            session = self._live_session()
            if session is None:
                return Outcome.NO_SESSION
            try:
                session.data = session.data.merged(patch)
            except ValidationError as e:
                logger.warning(
                    "rejected registration data update for %s: %s",
                    session.id,
                    [err["loc"] for err in e.errors()],
                )
                return Outcome.VALIDATION_FAILED
            self._touch()
            return Outcome.OK

    # -- navigation -----------------------------------------------------------

    def navigate_to_step(self, step: Union[RegistrationStep, str]) -> Outcome:
        with self._lock:
            session = self._live_session()
            if session is None:
                return Outcome.NO_SESSION
            target = _parse_step(step)
            if target is None:
                return Outcome.VALIDATION_FAILED

            if STEP_ORDER.index(target) > STEP_ORDER.index(session.current_step):
                if not self.validate_current_step():
                    logger.debug("forward navigation to %s blocked for %s", target.value, session.id)
                    return Outcome.VALIDATION_FAILED

            session.current_step = target
            self._touch()
            return Outcome.OK

    def go_to_next_step(self) -> Outcome:
        with self._lock:
            session = self._live_session()
            if session is None:
                return Outcome.NO_SESSION
            index = STEP_ORDER.index(session.current_step)
            if index + 1 >= len(STEP_ORDER):
                return Outcome.NO_ADJACENT_STEP
            if not self.validate_current_step():
                return Outcome.VALIDATION_FAILED

            self.complete_step(session.current_step)
            return self.navigate_to_step(STEP_ORDER[index + 1])

    def go_to_previous_step(self) -> Outcome:
        with self._lock:
            session = self._live_session()
            if session is None:
                return Outcome.NO_SESSION
            index = STEP_ORDER.index(session.current_step)
            if index == 0:
                return Outcome.NO_ADJACENT_STEP
            return self.navigate_to_step(STEP_ORDER[index - 1])

    def complete_step(self, step: Union[RegistrationStep, str]) -> Outcome:
        with self._lock:
            session = self._live_session()
            if session is None:
                return Outcome.NO_SESSION
            step = _parse_step(step)
            if step is None:
                return Outcome.VALIDATION_FAILED

            if step not in session.completed_steps:
                session.completed_steps.append(step)
            session.step_validation_state[step] = StepValidationRecord(
                is_valid=True,
                validated_at=self.clock(),
                errors=[],
            )
            self._touch()
            return Outcome.OK

    def is_step_completed(self, step: Union[RegistrationStep, str]) -> bool:
        session = self.get_current_session()
        if session is None:
            return False
        return _parse_step(step) in session.completed_steps

    def is_step_valid(self, step: Union[RegistrationStep, str]) -> bool:
        session = self.get_current_session()
        if session is None:
            return False
        record = session.step_validation_state.get(_parse_step(step))
        return record.is_valid if record is not None else False

    # -- validation -----------------------------------------------------------

    def validate_current_step(self) -> bool:
        session = self.get_current_session()
        if session is None:
            return False
        return self.validate_step(session.current_step, session.data)

    def validate_step(self, step: Union[RegistrationStep, str], data: Union[RegistrationData, Mapping[str, Any]]) -> bool:
        is_valid, _ = self._check(step, data)
        return is_valid

    def step_errors(self, step: Union[RegistrationStep, str], data: Union[RegistrationData, Mapping[str, Any], None] = None) -> List[str]:
        if data is None:
            data = self.get_data() or RegistrationData()
        _, errors = self._check(step, data)
        return errors

    def record_step_validation(self, step: Union[RegistrationStep, str]) -> Optional[StepValidationRecord]:
        """
        Validate step against the session data and store the outcome, errors
        included, as the step's latest validation record.
        """
        with self._lock:
            session = self._live_session()
            if session is None:
                return None
            step = _parse_step(step)
            if step is None:
                return None
            is_valid, errors = self._check(step, session.data)
            record = StepValidationRecord(is_valid=is_valid, validated_at=self.clock(), errors=errors)
            session.step_validation_state[step] = record
            self._touch()
            return record

    def _check(self, step, data):
        if isinstance(data, RegistrationData):
            fields = data.model_dump()
        else:
            try:
                fields = RegistrationData().merged(data).model_dump()
            except ValidationError:
                return False, ["Registration data is not valid."]

        session = self.get_current_session()
        verified = session.verification_state.verified_flags() if session is not None else {}
        return self.checker.check(step, fields, verified)

    # -- verification ---------------------------------------------------------

    def mark_verification_complete(
        self, channel: Union[VerificationChannel, str], identifier: Optional[str] = None
    ) -> Outcome:
        with self._lock:
            session = self._live_session()
            if session is None:
                return Outcome.NO_SESSION
            channel = _parse_channel(channel)
            if channel is None:
                return Outcome.VALIDATION_FAILED
            now = self.clock()

            state = session.verification_state.channel(channel)
            state.is_verified = True
            state.verified_at = now
            state.last_attempt = now
            if channel is VerificationChannel.DOCUMENT and identifier:
                session.verification_state.document.document_number = identifier

            logger.info("%s verification marked complete for %s", channel.value, session.id)
            self._touch()
            return Outcome.OK

    def check_verification_attempt(self, channel: Union[VerificationChannel, str]) -> Outcome:
        session = self.get_current_session()
        if session is None:
            return Outcome.NO_SESSION
        channel = _parse_channel(channel)
        if channel is None:
            return Outcome.VALIDATION_FAILED
        state = session.verification_state.channel(channel)
        return self._attempt_outcome(state, self.clock())

    def record_verification_attempt(self, channel: Union[VerificationChannel, str]) -> Outcome:
        with self._lock:
            session = self._live_session()
            if session is None:
                return Outcome.NO_SESSION
            channel = _parse_channel(channel)
            if channel is None:
                return Outcome.VALIDATION_FAILED
            now = self.clock()
            state = session.verification_state.channel(channel)

            outcome = self._attempt_outcome(state, now)
            if not outcome:
                logger.info("%s verification attempt refused for %s: %s", channel.value, session.id, outcome.value)
                return outcome

            state.attempts += 1
            state.last_attempt = now
            state.cooldown_until = now + self.config.verification_cooldown_ms
            self._touch()
            return Outcome.OK

    def _attempt_outcome(self, state: VerificationChannelState, now: int) -> Outcome:
        # The attempt cap is checked first: a locked channel stays locked after cooldown.
        if state.attempts >= self.config.max_verification_attempts:
            return Outcome.MAX_ATTEMPTS_REACHED
        if state.cooldown_until is not None and now < state.cooldown_until:
            return Outcome.ON_COOLDOWN
        return Outcome.OK

    def get_verification_cooldown(self, channel: Union[VerificationChannel, str]) -> int:
        session = self.get_current_session()
        if session is None:
            return 0
        channel = _parse_channel(channel)
        if channel is None:
            return 0
        state = session.verification_state.channel(channel)
        if state.cooldown_until is None:
            return 0
        remaining = state.cooldown_until - self.clock()
        return max(0, math.ceil(remaining / 1000))

    def can_attempt_verification(self, channel: Union[VerificationChannel, str]) -> bool:
        return bool(self.check_verification_attempt(channel))

    # -- timeout notification -------------------------------------------------

    def add_timeout_listener(self, listener: Callable[[], None]) -> None:
        self._timeout_listeners.append(listener)

    def remove_timeout_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._timeout_listeners:
            self._timeout_listeners.remove(listener)

    def _handle_session_timeout(self) -> None:
        with self._lock:
            # Activity that ran between the timer firing and this lock re-armed the timer.
            if self.timeout_manager.is_armed:
                logger.debug("idle timeout superseded by later activity")
                return
            session_id = self._session.id if self._session is not None else None
            self.clear_session()
        logger.info("registration session %s cleared after idle timeout", session_id)

        for listener in list(self._timeout_listeners):
            try:
                listener()
            except Exception:
                logger.exception("%s listener failed", SESSION_TIMEOUT_EVENT)

    # -- periodic cleanup -----------------------------------------------------

    def start_cleanup(self) -> None:
        with self._lock:
            self.stop_cleanup()
            self._cleanup_handle = self.scheduler.call_later(
                self.config.cleanup_interval_seconds, self._run_cleanup
            )

    def stop_cleanup(self) -> None:
        with self._lock:
            if self._cleanup_handle is not None:
                self._cleanup_handle.cancel()
                self._cleanup_handle = None

    def _run_cleanup(self) -> None:
        with self._lock:
            if self._cleanup_handle is None:
                return
            self.purge_expired()
            self._cleanup_handle = self.scheduler.call_later(
                self.config.cleanup_interval_seconds, self._run_cleanup
            )

    # -- internals ------------------------------------------------------------

    def _live_session(self) -> Optional[RegistrationSession]:
        self.purge_expired()
        return self._session

    def _touch(self) -> None:
        now = self.clock()
        self._session.last_activity = now
        self._session.expires_at = now + self.config.session_ttl_ms
        self._save_session()
        self.timeout_manager.reset_timeout()

    @staticmethod
    def _generate_session_id(now: int) -> str:
        return f"reg_{now}_{uuid4().hex[:9]}"

    def _save_session(self) -> None:
        if self._session is None:
            return
        try:
            self.storage.save(self.config.storage_key, self._session.to_blob())
        except Exception:
            logger.exception("error saving registration session %s", self._session.id)

    def _load_session(self) -> None:
        try:
            blob = self.storage.load(self.config.storage_key)
            if blob is None:
                return
            session = RegistrationSession.from_blob(blob)
        except Exception:
            logger.exception("error loading registration session")
            self.clear_session()
            return

        if session.is_expired(self.clock()):
            logger.info("stored registration session %s expired, purging", session.id)
            self.clear_session()
            return

        self._session = session
        self.timeout_manager.start_timeout(self._handle_session_timeout)
        logger.info("registration session %s restored at step %s", session.id, session.current_step.value)
