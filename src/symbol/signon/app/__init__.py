"""
Sign-On Application Layer

This package implements the web application layer for the sign-on service, handling
HTTP requests and responses using the aiohttp framework.

Key Components:
- cli.py: Entry point for running the application
- server.py: Web server configuration and middleware setup
- config.py: Configuration management using Pydantic settings
- handlers/: Request handlers for the OAuth and internal endpoints
- transport.py: Refresh token transport (response body or HttpOnly cookie)
- tasks.py: Background tasks for health monitoring and store maintenance
- cors.py: CORS handling backed by the registered clients' redirect URIs
- metrics.py: Vendor-agnostic metrics client
- util/: Administrative command line utilities

The application uses several middleware layers:
- Access log middleware
- CORS middleware for handling cross-origin requests
- Metrics middleware for request counts and timings
- Sentry middleware for error reporting
"""
