"""Stock ledger initial schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. Catalog reference tables (suppliers, categories, products, accessories)
2. Locations and customers
3. Document series
4. Price rules
5. Movements, movement lines and line add-ons
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CATALOG REFERENCE
    # ==========================================================================
    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_b2c_cents', sa.Integer(), nullable=True),
        sa.Column('price_b2b_cents', sa.Integer(), nullable=True),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_sku'), ['sku'], unique=True)
        batch_op.create_index(batch_op.f('ix_products_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_index('ix_products_supplier_active', ['supplier_id', 'is_active'], unique=False)

    op.create_table('product_categories',
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['product_sku'], ['products.sku'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('product_sku', 'category_id')
    )
    op.create_table('accessories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 2. LOCATIONS AND CUSTOMERS
    # ==========================================================================
    op.create_table('locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('locations', schema=None) as batch_op:
        batch_op.create_index('ix_locations_type_active', ['type', 'is_active'], unique=False)

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False, server_default='b2c'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 3. DOCUMENT SERIES
    # ==========================================================================
    op.create_table('document_series',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('scope', sa.String(length=16), nullable=False),
        sa.Column('prefix', sa.String(length=32), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('padding', sa.Integer(), nullable=False, server_default='6'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_series', schema=None) as batch_op:
        batch_op.create_index('ix_document_series_scope_active', ['scope', 'is_active'], unique=False)

    # ==========================================================================
    # 4. PRICE RULES
    # ==========================================================================
    op.create_table('price_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('target', sa.String(length=8), nullable=False),
        sa.Column('scope', sa.String(length=16), nullable=False, server_default='all'),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('price_rules', schema=None) as batch_op:
        batch_op.create_index('ix_price_rules_target_active', ['target', 'is_active'], unique=False)

    # ==========================================================================
    # 5. MOVEMENTS
    # ==========================================================================
    op.create_table('movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('channel', sa.String(length=8), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('from_location_id', sa.Integer(), nullable=True),
        sa.Column('to_location_id', sa.Integer(), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('series_code', sa.String(length=32), nullable=True),
        sa.Column('series_year', sa.Integer(), nullable=True),
        sa.Column('series_number', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('related_movement_id', sa.Integer(), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=True),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['related_movement_id'], ['movements.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('series_code', 'series_year', 'series_number', name='uq_movements_series_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_movements_channel'), ['channel'], unique=False)
        batch_op.create_index(batch_op.f('ix_movements_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_movements_reference'), ['reference'], unique=False)
        batch_op.create_index(batch_op.f('ix_movements_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_movements_related_movement_id'), ['related_movement_id'], unique=False)
        batch_op.create_index('ix_movements_type_occurred', ['type', 'occurred_at'], unique=False)
        batch_op.create_index('ix_movements_from_occurred', ['from_location_id', 'occurred_at'], unique=False)
        batch_op.create_index('ix_movements_to_occurred', ['to_location_id', 'occurred_at'], unique=False)

    op.create_table('movement_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=True),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('discount_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_movement_lines_quantity_positive'),
        sa.ForeignKeyConstraint(['movement_id'], ['movements.id'], ),
        sa.ForeignKeyConstraint(['sku'], ['products.sku'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('movement_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_movement_lines_movement_id'), ['movement_id'], unique=False)
        batch_op.create_index('ix_movement_lines_sku_movement', ['sku', 'movement_id'], unique=False)

    op.create_table('movement_line_add_ons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('line_id', sa.Integer(), nullable=False),
        sa.Column('accessory_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_movement_line_add_ons_quantity_positive'),
        sa.ForeignKeyConstraint(['line_id'], ['movement_lines.id'], ),
        sa.ForeignKeyConstraint(['accessory_id'], ['accessories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('movement_line_add_ons', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_movement_line_add_ons_line_id'), ['line_id'], unique=False)


def downgrade():
    op.drop_table('movement_line_add_ons')
    op.drop_table('movement_lines')
    op.drop_table('movements')
    op.drop_table('price_rules')
    op.drop_table('document_series')
    op.drop_table('customers')
    op.drop_table('locations')
    op.drop_table('accessories')
    op.drop_table('product_categories')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('suppliers')
