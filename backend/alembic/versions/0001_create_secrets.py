"""Create secrets table

Revision ID: 0001
Revises:
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "secrets",
        sa.Column("id", sa.String(22), primary_key=True),
        sa.Column("burn_token_hash", sa.String(64), nullable=False),
        sa.Column("ciphertext", sa.LargeBinary, nullable=False),
        sa.Column("iv", sa.LargeBinary(12), nullable=False),
        sa.Column("auth_tag", sa.LargeBinary(16), nullable=False),
        sa.Column("passphrase_protected", sa.Boolean, default=False, nullable=False),
        sa.Column("remaining_views", sa.Integer, default=1, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("expires_at", sa.DateTime, nullable=False),
    )

    # Cleanup job and retrieval both filter on expiry
    op.create_index("ix_secrets_expires_at", "secrets", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_secrets_expires_at", table_name="secrets")
    op.drop_table("secrets")
