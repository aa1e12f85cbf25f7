"""
Token broker service.

- GET  /reddit-auth/callback - OAuth redirect target
- POST /reddit-auth/callback - Code exchange
- POST /reddit-auth/refresh  - Token refresh (service bearer)
- GET  /health               - Service health check
"""

from reddit_feed.api.app import create_app

__all__ = ["create_app"]
