"""
Authentication for the gateway.

Machine routes are authenticated with Atlas credentials (``atl_`` tokens,
verified by digest); credential management is authenticated with the
dashboard session JWT.
"""

from .jwks import DashboardAuthenticator, SessionContext
from .lifecycle import CredentialService
from .verifier import CredentialContext, CredentialVerifier, extract_token

__all__ = [
    "CredentialContext",
    "CredentialService",
    "CredentialVerifier",
    "DashboardAuthenticator",
    "SessionContext",
    "extract_token",
]
