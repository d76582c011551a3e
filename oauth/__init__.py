"""
oauth — authorization-code flow against the supported providers.

Provides:
  • Per-source endpoint / scope configuration
  • Single-use CSRF state tokens (in-memory or Redis)
  • Authorization URL construction
  • Code → token exchange
"""
