"""Model for local preferences."""

from ridesync.extensions import db


class Preference(db.Model):
    """Model for local preferences."""

    __tablename__ = 'preferences'

    key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.Text, nullable=True)

    def __repr__(self):
        """Return string representation."""
        return f'<Preference {self.key}>'
