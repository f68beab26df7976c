"""Authentication module for Google OAuth2.

Provides the server side of the Google sign-in flow: code exchange and
credential refresh.

Usage:
    from networking_hub.auth import Credential, GoogleOAuthClient

    oauth = GoogleOAuthClient(client_id="...", client_secret="...")
    credential = oauth.exchange_code(code, redirect_uri)
"""

from networking_hub.auth.google_oauth import Credential, GoogleOAuthClient

__all__ = ["Credential", "GoogleOAuthClient"]
