"""
Sign-On Authorization Flow

This package holds the protocol core of the service: the authorization-code
lifecycle that turns a signed Symbol transaction into OAuth 2.0 tokens.

Key Modules:
- flow.py: The state machine (authorize, verify-signature, token, userinfo, logout)
- clients.py: Client registry and the CORS origin cache derived from it
- tokens.py: Access token issuance and verification
- pkce.py: RFC 7636 code challenge computation
- message.py: Schema of the JSON embedded in the signed transfer message
- signature.py / symbol_sdk.py: Signed-transaction verification interface and
  its Symbol SDK implementation
- duration.py: Parsing of expiry settings such as "5m" or "1d2h"
- errors.py: Error taxonomy shared with the HTTP layer
"""
