from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UserProfile:
    user_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    picture: Optional[str] = None


@dataclass(frozen=True)
class Credentials:
    """Token pair plus the profile returned at login."""

    access_token: str
    refresh_token: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    picture: Optional[str] = None

    @property
    def profile(self):
        return UserProfile(self.user_id, self.email, self.display_name, self.picture)

    def __repr__(self):
        # Keep tokens out of logs and tracebacks
        return f"Credentials(email={self.email!r}, user_id={self.user_id!r})"

    @classmethod
    def from_token_response(cls, data):
        """Build credentials from the `data` object of a token response."""
        user = data.get('user') or {}
        return cls(
            access_token=data['access_token'],
            refresh_token=data['refresh_token'],
            user_id=user.get('id'),
            email=user.get('email'),
            display_name=user.get('name'),
            picture=user.get('picture'),
        )
