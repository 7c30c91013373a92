"""Repository for the credential slot."""

import logging
import threading
import uuid

from ridesync.domain.credentials import Credentials, UserProfile
from ridesync.extensions import db
from ridesync.models.credential import CredentialEntry

logger = logging.getLogger(__name__)

DEVICE_ID = 'device_id'
ACCESS_TOKEN = 'access_token'
REFRESH_TOKEN = 'refresh_token'
USER_ID = 'user_id'
USER_EMAIL = 'user_email'
USER_NAME = 'user_name'
USER_PICTURE = 'user_picture'

ENCRYPTED_KEYS = (ACCESS_TOKEN, REFRESH_TOKEN)
CREDENTIAL_KEYS = (ACCESS_TOKEN, REFRESH_TOKEN, USER_ID, USER_EMAIL, USER_NAME, USER_PICTURE)


class SqlAlchemyCredentialRepository:
    """Durable store for the device identity and the current credentials.

    The token pair is always written and cleared as a unit in a single
    transaction; writers are serialized so readers never observe an
    access token paired with someone else's refresh token.
    """

    def __init__(self, db_instance=None, cipher=None):
        """Initialize the repository.

        Args:
            db_instance: Flask-SQLAlchemy instance
            cipher: TokenEncryption used for tokens at rest
        """
        self.db = db_instance or db
        self.cipher = cipher
        self._lock = threading.RLock()

    def _get_raw(self, key):
        entry = self.db.session.get(CredentialEntry, key)
        return entry.value if entry else None

    def _get(self, key):
        value = self._get_raw(key)
        if key in ENCRYPTED_KEYS and value is not None and self.cipher is not None:
            return self.cipher.decrypt(value)
        return value

    def _put(self, key, value):
        if key in ENCRYPTED_KEYS and value is not None and self.cipher is not None:
            value = self.cipher.encrypt(value)
        entry = self.db.session.get(CredentialEntry, key)
        if value is None:
            if entry is not None:
                self.db.session.delete(entry)
        elif entry is None:
            self.db.session.add(CredentialEntry(key=key, value=value))
        else:
            entry.value = value

    def _commit(self, action):
        try:
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error {action}: {str(e)}")
            raise

    def get_or_create_device_id(self):
        """Return the stable device id, creating it on first use."""
        with self._lock:
            device_id = self._get_raw(DEVICE_ID)
            if device_id:
                return device_id
            device_id = str(uuid.uuid4())
            self._put(DEVICE_ID, device_id)
            self._commit("creating device id")
            logger.info(f"Created device id {device_id}")
            return device_id

    def get_access_token(self):
        return self._get(ACCESS_TOKEN)

    def get_refresh_token(self):
        return self._get(REFRESH_TOKEN)

    def save_credentials(self, credentials):
        """Replace the whole credential slot.

        Args:
            credentials: Credentials instance
        """
        with self._lock:
            self._put(ACCESS_TOKEN, credentials.access_token)
            self._put(REFRESH_TOKEN, credentials.refresh_token)
            self._put(USER_ID, credentials.user_id)
            self._put(USER_EMAIL, credentials.email)
            self._put(USER_NAME, credentials.display_name)
            self._put(USER_PICTURE, credentials.picture)
            self._commit("saving credentials")
            logger.info(f"Saved credentials for {credentials.email}")

    def update_access_token(self, access_token):
        """Replace only the access token after a refresh."""
        with self._lock:
            if self._get_raw(REFRESH_TOKEN) is None:
                # Cleared concurrently (logout or revocation); do not resurrect a half slot
                logger.warning("Ignoring access token update: no credentials stored")
                return False
            self._put(ACCESS_TOKEN, access_token)
            self._commit("updating access token")
            return True

    def get_credentials(self):
        """Return the stored Credentials, or None when logged out."""
        with self._lock:
            access_token = self._get(ACCESS_TOKEN)
            refresh_token = self._get(REFRESH_TOKEN)
            if not refresh_token:
                return None
            return Credentials(
                access_token=access_token,
                refresh_token=refresh_token,
                user_id=self._get(USER_ID),
                email=self._get(USER_EMAIL),
                display_name=self._get(USER_NAME),
                picture=self._get(USER_PICTURE),
            )

    def get_profile(self):
        if not self.is_logged_in():
            return None
        return UserProfile(
            user_id=self._get(USER_ID),
            email=self._get(USER_EMAIL),
            display_name=self._get(USER_NAME),
            picture=self._get(USER_PICTURE),
        )

    def is_logged_in(self):
        return self.get_refresh_token() is not None

    def clear(self):
        """Forget the credentials. The device id is kept."""
        with self._lock:
            for key in CREDENTIAL_KEYS:
                self._put(key, None)
            self._commit("clearing credentials")
            logger.info("Credentials cleared")
