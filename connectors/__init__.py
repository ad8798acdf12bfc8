"""
connectors — team OAuth connections and feeds for social platforms.

Provides:
  • Per-team OAuth client configuration (client secret encrypted, write-only)
  • Authorization URL building and the code → token exchange
  • Per-team token storage with expiry checks and disconnect cascade
  • Feed subscriptions, concurrent refresh and a best-effort post cache
  • An async API client and the client-side authorization flow

Each platform (YouTube, Facebook, Instagram, LinkedIn) is a subclass of
PlatformAdapter, looked up through AdapterRegistry.
"""
