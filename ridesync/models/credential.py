"""Model for the credential slot."""

from ridesync.extensions import db


class CredentialEntry(db.Model):
    """One key of the credential slot (device id, tokens, profile fields)."""

    __tablename__ = 'credential_entries'

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Text, nullable=True)

    def __repr__(self):
        """Return string representation."""
        return f'<CredentialEntry {self.key}>'
