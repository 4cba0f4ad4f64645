"""External service clients.

This package contains the remote asset search gateway and the session
identity provider used by repositories and API endpoints.
"""
