from .artifact import TokenCredential, SessionArtifact, SessionHolder
from .single_flight import SingleFlight
from .backend_client import PlatformBackendClient
from .custodian import SessionCustodian, UserProfile

__all__ = [
    "TokenCredential",
    "SessionArtifact",
    "SessionHolder",
    "SingleFlight",
    "PlatformBackendClient",
    "SessionCustodian",
    "UserProfile",
]
