"""HTTP clients for external service communication."""

from quash_service.clients.identity_client import IdentityClient

__all__ = ["IdentityClient"]
