"""
Authenticated REST client package.

``ApiClient`` issues REST calls, normalises every response or transport
failure into an ``Outcome`` and recovers from expired access tokens with a
single refresh-and-retry.  Credentials live behind ``BaseCredentialStore``
so applications decide where tokens are persisted.
"""

from .auth import AuthRepository  # noqa: F401
from .classifier import classify  # noqa: F401
from .client import ApiClient  # noqa: F401
from .config import AuthOperation, ClientSettings  # noqa: F401
from .credentials import (  # noqa: F401
    BaseCredentialStore,
    InMemoryCredentialStore,
    JsonFileCredentialStore,
    get_default_credential_store,
)
from .errors import AuthenticationFailed, LocalValidationError  # noqa: F401
from .models import Outcome, RequestDescriptor  # noqa: F401

__version__ = "0.1.0"
