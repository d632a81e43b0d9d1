"""
Python client for the console service: credential store, route guard and
the API client with single-flight refresh.
"""
from client.credential_store import CredentialStore
from client.route_guard import RouteGuard, navigate
from client.http import ConsoleApiClient, error_from_response
from client.activation import ActivationAdminClient

__all__ = [
    "CredentialStore",
    "RouteGuard",
    "navigate",
    "ConsoleApiClient",
    "error_from_response",
    "ActivationAdminClient",
]
