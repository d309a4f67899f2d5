"""
Symbol Sign-On

This package implements an OAuth 2.0 style authorization server that replaces the
username/password step with a challenge signed by a Symbol blockchain account. A
client application obtains a one-time challenge, the user signs it with their wallet
as the message of a transfer transaction, and the signed transaction is exchanged
for an authorization code and then for a bearer access token and a rotating refresh
token.

Key Components:
- app: Web application layer with request handlers, configuration and server wiring
- oauth: The authorization-code lifecycle (challenge, code, tokens), PKCE and the
  signature verification interface
- store: Persistence adapters (PostgreSQL and Redis) behind a single interface
- model: SQLAlchemy table definitions used by the PostgreSQL store

Authentication Flow:
1. GET /oauth/authorize issues a challenge bound to a registered client and redirect URI
2. The user signs the challenge (embedded as JSON in a transfer message) with their wallet
3. POST /oauth/verify-signature checks the signed transaction and issues an authorization code
4. POST /oauth/token exchanges the code (with PKCE) for an access token and refresh token
5. Refresh tokens rotate on every use and can be revoked through POST /oauth/logout
"""
