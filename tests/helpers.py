"""
Shared test data and helpers for the annotation API tests.
"""

SQUARE = "POLYGON((0 0, 0 1, 1 1, 1 0, 0 0))"
FAR_SQUARE = "POLYGON((10 10, 10 11, 11 11, 11 10, 10 10))"


def auth_headers(username: str, *roles: str) -> dict:
    """Gateway headers identifying a caller."""
    headers = {"X-Auth-User": username}
    if roles:
        headers["X-Auth-Roles"] = ",".join(roles)
    return headers
