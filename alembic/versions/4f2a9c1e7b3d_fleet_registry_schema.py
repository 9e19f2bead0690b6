"""fleet registry: tenants, tenant_domains, tenant_credentials, provisioning_jobs

Revision ID: 4f2a9c1e7b3d
Revises: 
Create Date: 2026-10-19 09:12:44.201337

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4f2a9c1e7b3d'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slug", sa.String(63), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="provisioning"),
        sa.Column("schema_version", sa.String(14), nullable=True),
        sa.Column("database_ref", sa.String(64), nullable=True),
        sa.Column("feature_flags", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("template", sa.String(100), nullable=False),
        sa.Column("theme_preset", sa.String(100), nullable=False),
        sa.Column("admin_email", sa.String(320), nullable=False),
        sa.Column("owner_account_id", sa.String(64), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('provisioning', 'active', 'suspended', 'archived')",
            name="ck_tenants_status",
        ),
        sa.CheckConstraint(
            "schema_version IS NULL OR length(schema_version) = 14",
            name="ck_tenants_schema_version",
        ),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)
    op.create_index("ix_tenants_status", "tenants", ["status"])
    op.create_index("ix_tenants_schema_version", "tenants", ["schema_version"])
    op.create_index("ix_tenants_owner_account_id", "tenants", ["owner_account_id"])

    op.create_table(
        "tenant_domains",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "tenant_id", sa.Uuid(),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("hostname", sa.String(253), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ssl_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tenant_domains_hostname", "tenant_domains", ["hostname"], unique=True)
    op.create_index("ix_tenant_domains_tenant_id", "tenant_domains", ["tenant_id"])

    op.create_table(
        "tenant_credentials",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "tenant_id", sa.Uuid(),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("credential_type", sa.String(32), nullable=False),
        sa.Column("encrypted_value", sa.Text(), nullable=False),
        sa.Column("validated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tenant_id", "credential_type"),
    )
    op.create_index("ix_tenant_credentials_tenant_id", "tenant_credentials", ["tenant_id"])

    op.create_table(
        "provisioning_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "tenant_id", sa.Uuid(),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("steps", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_provisioning_jobs_tenant_id", "provisioning_jobs", ["tenant_id"])
    op.create_index("ix_provisioning_jobs_status", "provisioning_jobs", ["status"])


def downgrade() -> None:
    op.drop_table("provisioning_jobs")
    op.drop_table("tenant_credentials")
    op.drop_table("tenant_domains")
    op.drop_table("tenants")
