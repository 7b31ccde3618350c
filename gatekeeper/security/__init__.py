"""In-memory rate limiting, lockout and token revocation behind the request gate."""
