import logging

from config.postgres import PostgresConfig
from config.session import SessionConfig
from persistence.crypto import SessionCipher
from persistence.postgres_storage import PostgresBlobStorage
from persistence.storage import EncryptedBlobStorage, InMemoryBlobStorage
from registration.session_store import RegistrationSessionStore
from registration.state import RegistrationStep, VerificationChannel


def build_storage():
    if not PostgresConfig.is_configured():
        print("PG_HOST not set, using in-memory storage")
        return InMemoryBlobStorage()

    pg = PostgresConfig.from_env()
    storage = PostgresBlobStorage(pg.connect())
    storage.setup()
    return EncryptedBlobStorage(storage, SessionCipher.from_env())


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    patches = [
        {"firstName": "Ana", "lastName": "Pérez", "email": "ana@example.com"},
        {"phone": "+584121234567", "password": "s3cretpass", "confirmPassword": "s3cretpass"},
    ]

    config = SessionConfig.from_env()
    store = RegistrationSessionStore(storage=build_storage(), config=config)
    store.add_timeout_listener(lambda: print("session timed out"))
    store.start_cleanup()

    session_id = store.resume_or_create()
    print("session:", session_id)

    for i, patch in enumerate(patches, 1):
        store.update_data(patch)
        print(f"\nUPDATE #{i}")
        print("errors:", store.step_errors(RegistrationStep.PERSONAL_INFO))

    for channel in (VerificationChannel.EMAIL, VerificationChannel.PHONE):
        print(f"{channel.value} attempt:", store.record_verification_attempt(channel).value)
        store.mark_verification_complete(channel)

    outcome = store.go_to_next_step()
    print("\nnext step:", outcome.value)

    session = store.get_current_session()
    print("current step:", session.current_step.value)
    print("completed steps:", [s.value for s in session.completed_steps])
    print("email cooldown (s):", store.get_verification_cooldown(VerificationChannel.EMAIL))

    store.stop_cleanup()
    store.clear_session()


if __name__ == "__main__":
    main()
