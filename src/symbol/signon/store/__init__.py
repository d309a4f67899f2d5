"""
Persistence for the sign-on flow.

- base.py: Canonical records and the ``Store`` interface
- sql.py: PostgreSQL backend (SQLAlchemy asyncio + asyncpg)
- redis.py: Redis backend (redis-py asyncio)

The backend is chosen with ``STORE_BACKEND``; see ``symbol.signon.app.server``.
"""
