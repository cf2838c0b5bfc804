"""Add job_id and job_address to documents

Revision ID: 20261019_document_job
Revises: 20261018_initial_documents
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_document_job"
down_revision = "20261018_initial_documents"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("documents", schema=None) as batch_op:
        batch_op.add_column(sa.Column("job_id", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("job_address", sa.JSON(), nullable=True))
        batch_op.create_foreign_key(
            "fk_documents_job",
            "jobs",
            ["job_id"],
            ["id"],
        )
        batch_op.create_index("ix_documents_job_id", ["job_id"], unique=False)


def downgrade():
    with op.batch_alter_table("documents", schema=None) as batch_op:
        batch_op.drop_index("ix_documents_job_id")
        batch_op.drop_constraint("fk_documents_job", type_="foreignkey")
        batch_op.drop_column("job_address")
        batch_op.drop_column("job_id")
