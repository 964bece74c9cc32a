"""Create incident ledger tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'incident_records',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('sequence', sa.BigInteger(), nullable=False),
        sa.Column('author_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('witnesses', sa.Text(), nullable=True),
        sa.Column('attachment_urls', sa.JSON(), nullable=True),
        sa.Column('previous_digest', sa.String(length=64), nullable=False),
        sa.Column('digest', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sequence', name='uq_incident_tenant_sequence'),
        sa.UniqueConstraint('tenant_id', 'previous_digest', name='uq_incident_tenant_previous_digest'),
    )
    op.create_index('ix_incident_records_tenant_id', 'incident_records', ['tenant_id'])
    op.create_index('ix_incident_records_author_id', 'incident_records', ['author_id'])
    op.create_index('ix_incident_records_digest', 'incident_records', ['digest'])

    op.create_table(
        'ledger_heads',
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('tip_digest', sa.String(length=64), nullable=False),
        sa.Column('last_sequence', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('tenant_id'),
    )

    # Records are append-only. Deletes stay possible for whole-tenant removal.
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("""
            CREATE FUNCTION incident_records_block_update() RETURNS trigger AS $$
            BEGIN
                RAISE EXCEPTION 'incident_records are immutable';
            END;
            $$ LANGUAGE plpgsql
        """)
        op.execute("""
            CREATE TRIGGER incident_records_no_update
            BEFORE UPDATE ON incident_records
            FOR EACH ROW EXECUTE FUNCTION incident_records_block_update()
        """)


def downgrade() -> None:
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP TRIGGER IF EXISTS incident_records_no_update ON incident_records")
        op.execute("DROP FUNCTION IF EXISTS incident_records_block_update()")
    op.drop_table('ledger_heads')
    op.drop_index('ix_incident_records_digest', table_name='incident_records')
    op.drop_index('ix_incident_records_author_id', table_name='incident_records')
    op.drop_index('ix_incident_records_tenant_id', table_name='incident_records')
    op.drop_table('incident_records')
