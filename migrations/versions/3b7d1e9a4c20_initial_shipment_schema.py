"""initial shipment schema

Revision ID: 3b7d1e9a4c20
Revises:
Create Date: 2026-10-19 09:12:44.108233

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b7d1e9a4c20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    'shipmentstatus': ('CREATED', 'READY_FOR_DISPATCH', 'IN_TRANSIT',
                       'AT_WAREHOUSE', 'DELIVERED', 'CONCERN_RAISED'),
    'containerstatus': ('CREATED', 'LOCKED', 'IN_TRANSIT', 'AT_WAREHOUSE', 'DELIVERED'),
    'actorrole': ('SUPPLIER', 'TRANSPORTER', 'WAREHOUSE', 'RETAILER', 'ADMIN'),
    'concerntype': ('TEMPERATURE_DEVIATION', 'DAMAGE', 'DELAY', 'DOCUMENTATION_ISSUE',
                    'QUANTITY_MISMATCH', 'OTHER'),
    'concernseverity': ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL'),
    'concernstatus': ('OPEN', 'ACKNOWLEDGED', 'RESOLVED', 'ESCALATED'),
    'scanresult': ('VERIFIED', 'REJECTED'),
    'rejectionreason': ('INVALID_QR_FORMAT', 'UNKNOWN_CONTAINER', 'SHIPMENT_CLOSED',
                        'SHIPMENT_NOT_LOCKED', 'INVALID_TRANSITION', 'ROLE_NOT_PERMITTED'),
    'syncstatus': ('SYNCING', 'SYNCED', 'ERROR', 'STOPPED'),
}


def _enum(name):
    # Types are created once up front; columns only reference them
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    shipment_status = _enum('shipmentstatus')
    container_status = _enum('containerstatus')
    actor_role = _enum('actorrole')

    op.create_table(
        'shipment',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('shipment_hash', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('batch_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('supplier_wallet', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('number_of_containers', sa.Integer(), nullable=False),
        sa.Column('quantity_per_container', sa.Integer(), nullable=False),
        sa.Column('total_quantity', sa.Integer(), nullable=False),
        sa.Column('status', shipment_status, nullable=False),
        sa.Column('status_before_concern', shipment_status, nullable=True),
        sa.Column('ledger_tx_ref', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('block_ref', sa.Integer(), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('transporter_wallet', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('transporter_name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('transporter_assigned_at', sa.DateTime(), nullable=True),
        sa.Column('warehouse_wallet', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('warehouse_name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('warehouse_assigned_at', sa.DateTime(), nullable=True),
        sa.Column('last_updated_by', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipment_shipment_hash', 'shipment', ['shipment_hash'], unique=True)
    for column in ('batch_id', 'supplier_wallet', 'status', 'ledger_tx_ref',
                   'block_ref', 'transporter_wallet', 'warehouse_wallet'):
        op.create_index(f'ix_shipment_{column}', 'shipment', [column], unique=False)

    op.create_table(
        'container',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('container_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('shipment_hash', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('container_number', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', container_status, nullable=False),
        sa.Column('qr_payload', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('last_scan_location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('last_scan_at', sa.DateTime(), nullable=True),
        sa.Column('last_scanned_by', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('last_scanned_role', actor_role, nullable=True),
        sa.ForeignKeyConstraint(['shipment_hash'], ['shipment.shipment_hash']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shipment_hash', 'container_number',
                            name='uq_container_shipment_number'),
    )
    op.create_index('ix_container_container_id', 'container', ['container_id'], unique=True)
    op.create_index('ix_container_shipment_hash', 'container', ['shipment_hash'], unique=False)
    op.create_index('ix_container_status', 'container', ['status'], unique=False)

    op.create_table(
        'supportingdocument',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('shipment_hash', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('url', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('filename', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('mime_type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('uploaded_by', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.ForeignKeyConstraint(['shipment_hash'], ['shipment.shipment_hash']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_supportingdocument_shipment_hash', 'supportingdocument',
                    ['shipment_hash'], unique=False)

    op.create_table(
        'shipmentconcern',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('concern_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('shipment_hash', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('container_id', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('type', _enum('concerntype'), nullable=False),
        sa.Column('severity', _enum('concernseverity'), nullable=False),
        sa.Column('status', _enum('concernstatus'), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=False),
        sa.Column('raised_by', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('raised_by_role', actor_role, nullable=False),
        sa.Column('raised_at', sa.DateTime(), nullable=False),
        sa.Column('acknowledged_by', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('resolution', sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=True),
        sa.Column('resolved_by', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('escalation_note', sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=True),
        sa.Column('escalated_by', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('escalated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['shipment_hash'], ['shipment.shipment_hash']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipmentconcern_concern_id', 'shipmentconcern', ['concern_id'], unique=True)
    for column in ('shipment_hash', 'container_id', 'status', 'raised_by', 'raised_at'):
        op.create_index(f'ix_shipmentconcern_{column}', 'shipmentconcern', [column], unique=False)

    op.create_table(
        'scanlog',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('scan_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('container_id', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('shipment_hash', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('actor_wallet', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('actor_role', actor_role, nullable=False),
        sa.Column('location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('result', _enum('scanresult'), nullable=False),
        sa.Column('rejection_reason', _enum('rejectionreason'), nullable=True),
        sa.Column('message', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('previous_status', container_status, nullable=True),
        sa.Column('new_status', container_status, nullable=True),
        sa.Column('shipment_status', shipment_status, nullable=True),
        sa.Column('scanned_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scanlog_scan_id', 'scanlog', ['scan_id'], unique=True)
    for column in ('container_id', 'shipment_hash', 'actor_wallet', 'result', 'scanned_at'):
        op.create_index(f'ix_scanlog_{column}', 'scanlog', [column], unique=False)

    op.create_table(
        'syncstate',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('key', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('last_synced_block', sa.Integer(), nullable=False),
        sa.Column('chain_id', sa.Integer(), nullable=False),
        sa.Column('contract_address', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('total_events_processed', sa.Integer(), nullable=False),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('status', _enum('syncstatus'), nullable=False),
        sa.Column('last_error', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_syncstate_key', 'syncstate', ['key'], unique=True)


def downgrade():
    # Children first; shipments are referenced by every other table
    for table in ('syncstate', 'scanlog', 'shipmentconcern',
                  'supportingdocument', 'container', 'shipment'):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for enum_type in ENUMS:
            op.execute(f"DROP TYPE IF EXISTS {enum_type}")
