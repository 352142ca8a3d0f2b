"""
Authentication for the tracker web app.

Design goals:
- Twitter (OAuth 1.0a) is the only sign-in provider.
- The request token is bound to the browser session that asked for it.
- Cookie-based session (HttpOnly, signed) shared by every route.
"""
