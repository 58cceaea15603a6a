"""
Exchange credentials held inside the trusted boundary.

The secret is a pydantic ``SecretStr``: it renders as ``**********`` in
``repr``, ``str`` and any serialized form, and is only readable through
``reveal_secret()`` by the signing client.
"""

from __future__ import annotations

from pydantic import BaseModel, SecretStr

from .base_models import validate_credentials
from .exceptions import MissingCredentialsError


class Credentials(BaseModel):
    """API key (public identifier) plus API secret (never leaves the process)."""

    api_key: str
    api_secret: SecretStr

    class Config:
        extra = "forbid"

    @classmethod
    def from_values(cls, api_key: str | None, api_secret: str | SecretStr | None) -> "Credentials":
        secret_value = api_secret.get_secret_value() if isinstance(api_secret, SecretStr) else api_secret
        validate_credentials("API_KEY", api_key)
        validate_credentials("API_SECRET", secret_value)
        return cls(api_key=api_key, api_secret=SecretStr(secret_value))

    @property
    def is_destroyed(self) -> bool:
        return not self.api_secret.get_secret_value()

    def reveal_secret(self) -> str:
        if self.is_destroyed:
            raise MissingCredentialsError("Credentials were destroyed")
        return self.api_secret.get_secret_value()

    def masked_key(self) -> str:
        if len(self.api_key) <= 8:
            return "****"
        return f"{self.api_key[:4]}...{self.api_key[-4:]}"

    def destroy(self) -> None:
        """Drop the secret at shutdown; later signing attempts fail."""
        self.api_secret = SecretStr("")
