"""
Database Models

This package defines the SQLAlchemy tables used by the PostgreSQL store. The rows
mirror the canonical records in ``symbol.signon.store.base``.

Key Models:
- base.py: Base SQLAlchemy model with common type definitions
- oauth.py: Clients, challenges, authorization codes, sessions and the access
  token blacklist
- health.py: Health monitoring gauge

Lifecycle of the flow tables:
- OAuthChallenge: written by authorize, deleted when a signature is verified
- OAuthAuthCode: written by verify-signature, marked used by the token endpoint
- OAuthSession: written by the token endpoint, revoked by rotation or logout
- AccessTokenBlacklist: written when a presented access token fails verification

Every flow table has an indexed ``expires_at`` column; expired rows are removed by
the store maintenance task.
"""
