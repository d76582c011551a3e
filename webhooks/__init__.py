"""
webhooks — inbound change notifications from providers.

Each provider has a ``WebhookHandler`` that answers subscription
handshakes, verifies signatures against the raw body, normalizes the
payload and records activity for the matching integrations.
"""
