"""Repository for local preferences."""

import logging

from ridesync.extensions import db
from ridesync.models.preference import Preference

logger = logging.getLogger(__name__)

AUTO_SYNC_ENABLED = 'auto_sync_enabled'
LAST_SYNC_TIMESTAMP = 'last_sync_timestamp'

TRIGGER_LEVELS = ('PROBLEM_ONLY', 'ATTENTION_AND_PROBLEM')

# Settings shared with the web dashboard, with the cloud's defaults
CLOUD_SETTING_DEFAULTS = {
    'balance_threshold': 5,
    'te_optimal_min': 70,
    'te_optimal_max': 80,
    'ps_minimum': 20,
    'alerts_enabled': True,
    'screen_wake_on_alert': True,
    'balance_alert_enabled': True,
    'balance_alert_trigger': 'PROBLEM_ONLY',
    'balance_alert_visual': True,
    'balance_alert_sound': False,
    'balance_alert_vibration': True,
    'balance_alert_cooldown': 30,
    'te_alert_enabled': True,
    'te_alert_trigger': 'PROBLEM_ONLY',
    'te_alert_visual': True,
    'te_alert_sound': False,
    'te_alert_vibration': True,
    'te_alert_cooldown': 30,
    'ps_alert_enabled': True,
    'ps_alert_trigger': 'PROBLEM_ONLY',
    'ps_alert_visual': True,
    'ps_alert_sound': False,
    'ps_alert_vibration': True,
    'ps_alert_cooldown': 30,
    'background_mode_enabled': True,
    AUTO_SYNC_ENABLED: True,
}


class SqlAlchemyPreferenceRepository:
    """Repository for managing preferences using SQLAlchemy."""

    def __init__(self, db_instance=None):
        """Initialize the repository."""
        self.db = db_instance or db

    def get(self, key, default=None):
        """Get a preference value.

        Args:
            key: Preference key
            default: Default value if the preference is not found

        Returns:
            The stored string value or default
        """
        preference = self.db.session.get(Preference, key)
        if not preference or preference.value is None:
            return default
        return preference.value

    def set(self, key, value):
        try:
            preference = self.db.session.get(Preference, key)
            if preference:
                preference.value = str(value)
            else:
                self.db.session.add(Preference(key=key, value=str(value)))
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error saving preference {key}: {str(e)}")
            raise

    def get_bool(self, key, default=False):
        value = self.get(key)
        if value is None:
            return default
        return value.lower() in ('true', '1', 'yes')

    def get_int(self, key, default=0):
        value = self.get(key)
        try:
            return int(value) if value is not None else default
        except ValueError:
            logger.warning(f"Preference {key} is not an integer: {value!r}")
            return default

    def is_auto_sync_enabled(self, default=True):
        return self.get_bool(AUTO_SYNC_ENABLED, default)

    def set_auto_sync_enabled(self, enabled):
        self.set(AUTO_SYNC_ENABLED, 'true' if enabled else 'false')

    def get_last_sync_timestamp(self):
        return self.get_int(LAST_SYNC_TIMESTAMP, 0)

    def set_last_sync_timestamp(self, timestamp_ms):
        self.set(LAST_SYNC_TIMESTAMP, int(timestamp_ms))

    def get_cloud_settings(self):
        """Local values of every dashboard-shared setting, typed like the defaults."""
        settings = {}
        for key, default in CLOUD_SETTING_DEFAULTS.items():
            if isinstance(default, bool):
                settings[key] = self.get_bool(key, default)
            elif isinstance(default, int):
                settings[key] = self.get_int(key, default)
            else:
                value = self.get(key, default)
                settings[key] = value if value in TRIGGER_LEVELS else default
        return settings

    def apply_cloud_settings(self, settings):
        """Store settings received from the cloud in one transaction.

        Unknown keys are ignored; an unknown trigger level falls back to PROBLEM_ONLY.

        Returns:
            Number of settings written
        """
        written = 0
        try:
            for key, default in CLOUD_SETTING_DEFAULTS.items():
                if key not in settings or settings[key] is None:
                    continue
                value = settings[key]
                if isinstance(default, bool):
                    stored = 'true' if bool(value) else 'false'
                elif isinstance(default, int):
                    stored = str(int(value))
                else:
                    stored = value if value in TRIGGER_LEVELS else 'PROBLEM_ONLY'

                preference = self.db.session.get(Preference, key)
                if preference:
                    preference.value = stored
                else:
                    self.db.session.add(Preference(key=key, value=stored))
                written += 1
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error applying cloud settings: {str(e)}")
            raise
        return written
