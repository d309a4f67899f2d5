"""init

Revision ID: 5c1e0f9a2b7d
Revises:
Create Date: 2025-06-12 10:42:18.511023

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5c1e0f9a2b7d"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "oauth_clients",
        sa.Column("client_id", sa.String(256), primary_key=True),
        sa.Column("trusted_redirect_uris", sa.JSON, nullable=False),
        sa.Column("app_name", sa.String(256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "oauth_challenges",
        sa.Column("challenge", sa.String(64), primary_key=True),
        sa.Column("client_id", sa.String(256), nullable=False),
        sa.Column("redirect_uri", sa.String(2048), nullable=False),
        sa.Column("state", sa.String(512), nullable=True),
        sa.Column("code_challenge", sa.String(128), nullable=True),
        sa.Column("code_challenge_method", sa.String(16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_oauth_challenges_expires_at", "oauth_challenges", ["expires_at"]
    )

    op.create_table(
        "oauth_auth_codes",
        sa.Column("auth_code", sa.String(128), primary_key=True),
        sa.Column("client_id", sa.String(256), nullable=False),
        sa.Column("redirect_uri", sa.String(2048), nullable=True),
        sa.Column("address", sa.String(64), nullable=False),
        sa.Column("public_key", sa.String(64), nullable=False),
        sa.Column("state", sa.String(512), nullable=True),
        sa.Column("code_challenge", sa.String(128), nullable=True),
        sa.Column("code_challenge_method", sa.String(16), nullable=True),
        sa.Column("used", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_oauth_auth_codes_expires_at", "oauth_auth_codes", ["expires_at"]
    )

    op.create_table(
        "oauth_sessions",
        sa.Column("refresh_token", sa.String(128), primary_key=True),
        sa.Column("session_id", sa.String(32), nullable=False),
        sa.Column("client_id", sa.String(256), nullable=False),
        sa.Column("address", sa.String(64), nullable=False),
        sa.Column("public_key", sa.String(64), nullable=False),
        sa.Column("access_token", sa.String(32), nullable=True),
        sa.Column("revoked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_oauth_sessions_session_id", "oauth_sessions", ["session_id"])
    op.create_index("ix_oauth_sessions_expires_at", "oauth_sessions", ["expires_at"])

    # Keyed by the sha256 of the rejected token, never the token itself.
    op.create_table(
        "access_token_blacklist",
        sa.Column("token_id", sa.String(128), primary_key=True),
        sa.Column("jti", sa.String(32), nullable=True),
        sa.Column("reason", sa.String(256), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_access_token_blacklist_expires_at",
        "access_token_blacklist",
        ["expires_at"],
    )


def downgrade() -> None:
    op.drop_table("access_token_blacklist")
    op.drop_table("oauth_sessions")
    op.drop_table("oauth_auth_codes")
    op.drop_table("oauth_challenges")
    op.drop_table("oauth_clients")
