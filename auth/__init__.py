"""
auth — caller authentication boundary.

Provides:
  • Signed bearer token creation & verification
  • ``CallerIdentity`` (user id + team id + role), always derived server-side
  • ``get_current_user_id`` / ``get_caller`` FastAPI dependencies

Register / login / session bootstrap live outside this service.
"""
