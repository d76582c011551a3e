"""
connectors — provider access for workspace hygiene.

Provides:
  • A capability-declaring connector per provider (Google, Slack, …)
  • Token refresh, connection tests, file restore, webhook subscriptions
  • Fernet encryption of tokens at rest
  • The integration manager that ties stored records to live connectors
"""
