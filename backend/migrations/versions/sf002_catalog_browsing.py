"""Add storefront browsing: product description/featured flag and recently viewed

Revision ID: sf002
Revises: sf001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "sf002"
down_revision = "sf001"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(sa.Column("description", sa.Text(), nullable=True))
        batch_op.add_column(sa.Column("is_featured", sa.Boolean(), nullable=False, server_default="0"))
        batch_op.create_index("ix_products_is_featured", ["is_featured"])

    # One row per (user, product) or (session, product); repeat views bump viewed_at
    op.create_table(
        "recently_viewed_products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("session_id", sa.String(length=128), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "product_id", name="uq_recently_viewed_user_product"),
        sa.UniqueConstraint("session_id", "product_id", name="uq_recently_viewed_session_product"),
        sqlite_autoincrement=True
    )
    op.create_index("ix_recently_viewed_products_user_id", "recently_viewed_products", ["user_id"])
    op.create_index("ix_recently_viewed_products_session_id", "recently_viewed_products", ["session_id"])
    op.create_index("ix_recently_viewed_products_viewed_at", "recently_viewed_products", ["viewed_at"])


def downgrade():
    op.drop_index("ix_recently_viewed_products_viewed_at", table_name="recently_viewed_products")
    op.drop_index("ix_recently_viewed_products_session_id", table_name="recently_viewed_products")
    op.drop_index("ix_recently_viewed_products_user_id", table_name="recently_viewed_products")
    op.drop_table("recently_viewed_products")

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_index("ix_products_is_featured")
        batch_op.drop_column("is_featured")
        batch_op.drop_column("description")
