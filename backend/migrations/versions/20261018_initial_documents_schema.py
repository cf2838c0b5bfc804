"""initial documents schema

Revision ID: 20261018_initial_documents
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the complete schema from scratch:
- businesses / preparers: tenant profile and document signatories
- customers: live customer records
- document_sequences: atomic per-business numbering counters
- documents / document_lines: issued invoices, quotes and certificates
- jobs: numbered job cards
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial_documents"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # businesses / preparers
    # ============================================================================
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.String(length=512), nullable=True),
        sa.Column("signature_image", sa.Text(), nullable=True),
        sa.Column("invoice_terms", sa.Text(), nullable=True),
        sa.Column("quote_terms", sa.Text(), nullable=True),
        sa.Column("payment_info", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_businesses_is_active", "businesses", ["is_active"], unique=False)

    op.create_table(
        "preparers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("gas_safe_number", sa.String(length=64), nullable=True),
        sa.Column("gas_licence_number", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_preparers_business_id", "preparers", ["business_id"], unique=False)
    op.create_index("ix_preparers_business_active", "preparers", ["business_id", "is_active"], unique=False)

    # ============================================================================
    # customers
    # ============================================================================
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("address_line_1", sa.String(length=255), nullable=True),
        sa.Column("address_line_2", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=128), nullable=True),
        sa.Column("region", sa.String(length=128), nullable=True),
        sa.Column("postal_code", sa.String(length=16), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_customers_business_id", "customers", ["business_id"], unique=False)
    op.create_index("ix_customers_business_name", "customers", ["business_id", "name"], unique=False)

    # ============================================================================
    # document_sequences: one row per (business, counter)
    # ============================================================================
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("counter_name", sa.String(length=32), nullable=False),
        sa.Column("next_value", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", "counter_name", name="uq_doc_sequences_business_counter"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_sequences_business_id", "document_sequences", ["business_id"], unique=False)
    op.create_index("ix_document_sequences_counter_name", "document_sequences", ["counter_name"], unique=False)

    # ============================================================================
    # documents / document_lines
    # ============================================================================
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("document_class", sa.String(length=16), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expiry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_snapshot", sa.JSON(), nullable=False),
        sa.Column("preparer_id", sa.Integer(), nullable=True),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("partial_payment_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subtotal_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tax_total_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discount_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("grand_total_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("balance_due_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_info", sa.Text(), nullable=True),
        sa.Column("locked_payload", sa.Text(), nullable=True),
        sa.Column("locked_payload_sha256", sa.String(length=64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["preparer_id"], ["preparers.id"]),
        sa.PrimaryKeyConstraint("id"),
        # A number is never issued twice per business and class
        sa.UniqueConstraint("business_id", "document_class", "sequence_number", name="uq_documents_business_class_seq"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_documents_business_id", "documents", ["business_id"], unique=False)
    op.create_index("ix_documents_document_class", "documents", ["document_class"], unique=False)
    op.create_index("ix_documents_status", "documents", ["status"], unique=False)
    op.create_index("ix_documents_customer_id", "documents", ["customer_id"], unique=False)
    op.create_index("ix_documents_preparer_id", "documents", ["preparer_id"], unique=False)
    op.create_index("ix_documents_reference", "documents", ["reference"], unique=False)
    op.create_index(
        "ix_documents_business_class_status", "documents",
        ["business_id", "document_class", "status"], unique=False,
    )

    op.create_table(
        "document_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=512), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("unit_price_pence", sa.Integer(), nullable=False),
        sa.Column("tax_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("line_total_pence", sa.Integer(), nullable=False),
        sa.Column("line_tax_pence", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", "position", name="uq_document_lines_document_position"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_lines_document_id", "document_lines", ["document_id"], unique=False)

    # ============================================================================
    # jobs
    # ============================================================================
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_snapshot", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("estimated_duration", sa.String(length=64), nullable=True),
        sa.Column("price_pence", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", "sequence_number", name="uq_jobs_business_seq"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_jobs_business_id", "jobs", ["business_id"], unique=False)
    op.create_index("ix_jobs_customer_id", "jobs", ["customer_id"], unique=False)
    op.create_index("ix_jobs_reference", "jobs", ["reference"], unique=False)
    op.create_index("ix_jobs_status", "jobs", ["status"], unique=False)
    op.create_index(
        "ix_jobs_business_status_scheduled", "jobs",
        ["business_id", "status", "scheduled_at"], unique=False,
    )


def downgrade():
    op.drop_table("jobs")
    op.drop_table("document_lines")
    op.drop_table("documents")
    op.drop_table("document_sequences")
    op.drop_table("customers")
    op.drop_table("preparers")
    op.drop_table("businesses")
