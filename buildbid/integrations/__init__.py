"""External service clients.

Clients fall back to realistic mock responses when no real credentials
are configured.
"""

from buildbid.integrations.stripe_client import StripeClient

__all__ = [
    "StripeClient",
]
