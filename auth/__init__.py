"""
auth — caller authentication.

Provides:
  • Signed session token creation & verification
  • ``get_current_user`` FastAPI dependency (Bearer header or cookie)
"""
