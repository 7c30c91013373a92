"""Device-code login flow for a head unit without a keyboard."""

import logging
import threading

from ridesync.domain.auth_state import ACTIVE_STAGES, AuthEvent, AuthStage, Idle, transition
from ridesync.domain.credentials import Credentials
from ridesync.services.api_client import TransportError

logger = logging.getLogger(__name__)

INITIAL_POLL_INTERVAL_MS = 5000
MAX_POLL_INTERVAL_MS = 8000
BACKOFF_AFTER_ATTEMPTS = 20
BACKOFF_STEP_MS = 1000
MAX_POLL_ATTEMPTS = 120
SLOW_DOWN_FACTOR = 1.5

PENDING_STATUSES = ('authorization_pending', 'pending')


class DeviceAuthService:
    """Drives the device-code flow: request a code, poll until the user approves.

    `cancel()` may be called from any thread. It bumps the flow generation so
    a poll loop that is mid-request discards whatever it receives.
    """

    def __init__(self, cloud_client, credential_repository, sleep=None, max_attempts=MAX_POLL_ATTEMPTS):
        """Initialize the flow.

        Args:
            cloud_client: CloudClient
            credential_repository: SqlAlchemyCredentialRepository
            sleep: Optional callable taking milliseconds; defaults to waiting on
                the cancellation event so cancel() wakes the poll loop
            max_attempts: Poll attempt budget
        """
        self.cloud_client = cloud_client
        self.credential_repository = credential_repository
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._lock = threading.RLock()
        self._state = Idle()
        self._generation = 0
        self._cancel_event = threading.Event()
        self._device_code = None
        self._user_code = None
        self._verification_uri = None
        self._interval_ms = INITIAL_POLL_INTERVAL_MS

    @property
    def state(self):
        with self._lock:
            return self._state

    @property
    def interval_ms(self):
        with self._lock:
            return self._interval_ms

    @property
    def is_polling(self):
        return self.state.stage in (AuthStage.WAITING_FOR_USER, AuthStage.POLLING)

    def _apply(self, generation, event, **payload):
        """Transition only if the flow has not been cancelled or restarted."""
        with self._lock:
            if generation != self._generation:
                return False
            self._state = transition(self._state, event, **payload)
            return True

    def _is_stale(self, generation):
        with self._lock:
            return generation != self._generation

    def start(self):
        """Request a device code and move to WaitingForUser.

        Network errors are reported as an Error state; there is no retry.
        Starting while a flow is in progress cancels that flow first.

        Returns:
            The resulting DeviceAuthState
        """
        with self._lock:
            if self._state.stage in ACTIVE_STAGES:
                logger.info(f"Restarting device login from {self._state.stage.value}")
                self._state = transition(self._state, AuthEvent.CANCEL)
            # Wake a poll loop of the previous flow
            self._cancel_event.set()
            self._generation += 1
            generation = self._generation
            self._cancel_event = threading.Event()
            self._device_code = None
            self._interval_ms = INITIAL_POLL_INTERVAL_MS
            self._state = transition(self._state, AuthEvent.START)

        device_id = self.credential_repository.get_or_create_device_id()
        try:
            response = self.cloud_client.request_device_code(device_id)
        except TransportError as e:
            logger.warning(f"Device code request failed: {e.message}")
            self._apply(generation, AuthEvent.FAILED, message=e.message or "Network error")
            return self.state

        data = response.data if response.success else None
        if not data:
            message = response.error or ("No data in response" if response.ok else f"HTTP {response.status_code}")
            logger.warning(f"Device code request rejected: {message}")
            self._apply(generation, AuthEvent.FAILED, message=message)
            return self.state

        try:
            device_code = data['device_code']
            user_code = data['user_code']
            verification_uri = data['verification_uri']
            expires_in = int(data.get('expires_in') or 0)
            interval = data.get('interval')
        except (KeyError, TypeError, ValueError):
            self._apply(generation, AuthEvent.FAILED, message="Malformed device code response")
            return self.state

        with self._lock:
            if generation != self._generation:
                return self._state
            self._device_code = device_code
            self._user_code = user_code
            self._verification_uri = verification_uri
            self._interval_ms = int(interval * 1000) if interval else INITIAL_POLL_INTERVAL_MS
            self._state = transition(
                self._state, AuthEvent.CODE_RECEIVED,
                user_code=user_code, verification_uri=verification_uri, expires_in=expires_in,
            )
        logger.info(f"Device code issued, user code {user_code}")
        return self.state

    def poll(self):
        """Poll until the user approves, denies, the code expires or the flow is cancelled.

        Returns:
            Credentials on success, otherwise None
        """
        with self._lock:
            generation = self._generation
            device_code = self._device_code
            cancel_event = self._cancel_event
            interval_ms = self._interval_ms
            if device_code is None:
                self._state = transition(self._state, AuthEvent.FAILED, message="No device code")
                return None

        sleep = self._sleep or (lambda ms: cancel_event.wait(ms / 1000.0))
        device_id = self.credential_repository.get_or_create_device_id()
        attempts = 0

        while attempts < self.max_attempts:
            attempts += 1
            if not self._apply(
                generation, AuthEvent.POLL_ATTEMPT,
                user_code=self._user_code,
                verification_uri=self._verification_uri,
                attempts_remaining=self.max_attempts - attempts,
            ):
                return None

            try:
                response = self.cloud_client.poll_device_token(device_code, device_id)
            except TransportError as e:
                logger.debug(f"Poll attempt {attempts} failed, will retry: {e.message}")
                response = None

            if self._is_stale(generation):
                logger.info("Device login cancelled, discarding poll result")
                return None

            if response is not None:
                if response.success and response.data:
                    return self._complete(generation, response.data)

                status = response.status
                if status in PENDING_STATUSES:
                    pass
                elif status == 'slow_down':
                    interval_ms = int(interval_ms * SLOW_DOWN_FACTOR)
                    logger.info(f"Server asked to slow down, polling every {interval_ms}ms")
                elif status == 'expired':
                    self._finish(generation, AuthEvent.EXPIRED)
                    return None
                elif status == 'access_denied':
                    self._finish(generation, AuthEvent.DENIED)
                    return None
                elif response.body is None and not response.ok:
                    logger.debug(f"Poll attempt {attempts} returned HTTP {response.status_code} without a body")
                else:
                    self._finish(generation, AuthEvent.FAILED, message=response.error or "Unknown error")
                    return None

            sleep(interval_ms)

            if attempts >= BACKOFF_AFTER_ATTEMPTS and interval_ms < MAX_POLL_INTERVAL_MS:
                interval_ms = min(interval_ms + BACKOFF_STEP_MS, MAX_POLL_INTERVAL_MS)
            with self._lock:
                if generation == self._generation:
                    self._interval_ms = interval_ms

        logger.info(f"Device login expired after {attempts} attempts")
        self._finish(generation, AuthEvent.EXPIRED)
        return None

    def _complete(self, generation, data):
        try:
            credentials = Credentials.from_token_response(data)
        except (KeyError, TypeError):
            self._finish(generation, AuthEvent.FAILED, message="Malformed token response")
            return None

        with self._lock:
            if generation != self._generation:
                return None
            self.credential_repository.save_credentials(credentials)
            self._device_code = None
            self._state = transition(
                self._state, AuthEvent.AUTHORIZED,
                email=credentials.email, name=credentials.display_name,
            )
        logger.info(f"Device login succeeded for {credentials.email}")
        return credentials

    def _finish(self, generation, event, **payload):
        with self._lock:
            if self._apply(generation, event, **payload):
                self._device_code = None

    def cancel(self):
        """Stop polling and return to Idle. Safe to call from any thread."""
        with self._lock:
            self._generation += 1
            self._cancel_event.set()
            self._device_code = None
            self._interval_ms = INITIAL_POLL_INTERVAL_MS
            self._state = transition(self._state, AuthEvent.CANCEL)
        logger.info("Device login cancelled")

    def reset(self):
        self.cancel()
