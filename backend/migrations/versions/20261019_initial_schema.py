"""initial back-office schema

Revision ID: 20261019_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete back-office schema:
- master data: categories, units, branches, suppliers, payment_methods,
  customer_categories, customers
- catalog and stock: products, inventories, inventory_movements
- purchasing: purchases, purchase_details, purchase_payments
- sales: discount_codes, sales, sale_details, sale_discounts, sale_payments
- invoice_sequences: per (prefix, year) invoice counters

Every soft-deletable table carries deleted_at. Rows that are updated under
row locks (inventories, purchases, customers, discount_codes, sales) carry
version_id for optimistic concurrency on backends without SELECT FOR UPDATE.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    cols = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                              server_default=sa.text('CURRENT_TIMESTAMP')))
    return cols


def _deleted_at():
    return sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True)


def _money(name, nullable=False, default='0'):
    if default is None:
        return sa.Column(name, sa.Numeric(12, 2), nullable=nullable)
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable, server_default=default)


def upgrade():
    # ============================================================================
    # Master data
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        _deleted_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('abbreviation', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        _deleted_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('abbreviation'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('manager', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        _deleted_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('nit', sa.String(length=32), nullable=False),
        sa.Column('contact_name', sa.String(length=128), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        _deleted_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('nit'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('requires_bank_account', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        _deleted_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'customer_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _money('min_purchase_amount'),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        _deleted_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('nit', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), nullable=False, server_default='0'),
        _money('total_purchases'),
        sa.Column('last_purchase_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _deleted_at(),
        sa.ForeignKeyConstraint(['category_id'], ['customer_categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('nit'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_category_id', 'customers', ['category_id'])

    # ============================================================================
    # Catalog and stock ledger
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        _money('cost'),
        _money('price'),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('manage_stock', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        *_timestamps(),
        _deleted_at(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_unit_id', 'products', ['unit_id'])

    op.create_table(
        'inventories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('stock', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('max_stock', sa.Numeric(12, 3), nullable=True),
        sa.Column('last_movement_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _deleted_at(),
        sa.CheckConstraint('stock >= 0', name='ck_inventories_stock_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'branch_id', name='uq_inventories_product_branch'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventories_product_id', 'inventories', ['product_id'])
    op.create_index('ix_inventories_branch_id', 'inventories', ['branch_id'])

    # Append-only ledger; only COMPLETED rows have moved stock
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('source_branch_id', sa.Integer(), nullable=True),
        sa.Column('target_branch_id', sa.Integer(), nullable=True),
        _money('unit_cost'),
        _money('total_cost'),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        _deleted_at(),
        sa.CheckConstraint('quantity > 0', name='ck_inventory_movements_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventories.id']),
        sa.ForeignKeyConstraint(['source_branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['target_branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_movements_product_branch', 'inventory_movements', ['product_id', 'branch_id'])
    op.create_index('ix_inventory_movements_product_id', 'inventory_movements', ['product_id'])
    op.create_index('ix_inventory_movements_branch_id', 'inventory_movements', ['branch_id'])
    op.create_index('ix_inventory_movements_inventory_id', 'inventory_movements', ['inventory_id'])
    op.create_index('ix_inventory_movements_movement_type', 'inventory_movements', ['movement_type'])
    op.create_index('ix_inventory_movements_status', 'inventory_movements', ['status'])
    op.create_index('ix_inventory_movements_reference_id', 'inventory_movements', ['reference_id'])

    # ============================================================================
    # Purchasing
    # ============================================================================
    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        _money('subtotal'),
        _money('tax_amount'),
        _money('discount_amount'),
        _money('total'),
        _money('paid_amount'),
        _money('pending_amount'),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_branch_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _deleted_at(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.ForeignKeyConstraint(['received_branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchases_status_date', 'purchases', ['status', 'date'])
    op.create_index('ix_purchases_supplier_id', 'purchases', ['supplier_id'])
    op.create_index('ix_purchases_status', 'purchases', ['status'])

    op.create_table(
        'purchase_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        _money('unit_price', default=None),
        sa.Column('discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('discount_amount'),
        sa.Column('tax_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('tax_amount'),
        _money('line_total', default=None),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_details_purchase_id', 'purchase_details', ['purchase_id'])

    op.create_table(
        'purchase_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('payment_method_id', sa.Integer(), nullable=False),
        _money('amount', default=None),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('reference_number', sa.String(length=128), nullable=True),
        sa.Column('bank_account', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        _deleted_at(),
        sa.CheckConstraint('amount > 0', name='ck_purchase_payments_amount_positive'),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_payments_purchase_id', 'purchase_payments', ['purchase_id'])
    op.create_index('ix_purchase_payments_payment_method_id', 'purchase_payments', ['payment_method_id'])
    op.create_index('ix_purchase_payments_status', 'purchase_payments', ['status'])

    # ============================================================================
    # Sales
    # ============================================================================
    op.create_table(
        'discount_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('value', sa.Numeric(10, 2), nullable=False),
        sa.Column('scope', sa.String(length=16), nullable=False, server_default='GLOBAL'),
        sa.Column('customer_category_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        _money('min_purchase_amount', nullable=True, default=None),
        _money('max_discount_amount', nullable=True, default=None),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _deleted_at(),
        sa.ForeignKeyConstraint(['customer_category_id'], ['customer_categories.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('discount_code_id', sa.Integer(), nullable=True),
        sa.Column('guest_name', sa.String(length=255), nullable=True),
        sa.Column('guest_nit', sa.String(length=32), nullable=True),
        sa.Column('guest_email', sa.String(length=255), nullable=True),
        sa.Column('guest_phone', sa.String(length=32), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        _money('subtotal'),
        _money('tax_amount'),
        _money('discount_amount'),
        _money('code_discount_amount'),
        _money('total'),
        _money('paid_amount'),
        _money('pending_amount'),
        sa.Column('loyalty_points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _deleted_at(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['discount_code_id'], ['discount_codes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_status_date', 'sales', ['status', 'date'])
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_branch_id', 'sales', ['branch_id'])
    op.create_index('ix_sales_discount_code_id', 'sales', ['discount_code_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_payment_status', 'sales', ['payment_status'])

    op.create_table(
        'sale_details',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        _money('unit_price', default=None),
        sa.Column('discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('discount_amount'),
        sa.Column('tax_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('tax_amount'),
        _money('line_total', default=None),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_details_sale_id', 'sale_details', ['sale_id'])

    op.create_table(
        'sale_discounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        _money('value', default=None),
        _money('amount_applied', default=None),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_discounts_sale_id', 'sale_discounts', ['sale_id'])

    op.create_table(
        'sale_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('payment_method_id', sa.Integer(), nullable=False),
        _money('amount', default=None),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('reference_number', sa.String(length=128), nullable=True),
        sa.Column('bank_account', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        _deleted_at(),
        sa.CheckConstraint('amount > 0', name='ck_sale_payments_amount_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_payments_sale_id', 'sale_payments', ['sale_id'])
    op.create_index('ix_sale_payments_payment_method_id', 'sale_payments', ['payment_method_id'])
    op.create_index('ix_sale_payments_status', 'sale_payments', ['status'])

    # ============================================================================
    # invoice_sequences: ORD-YYYY-NNNN / VEN-YYYY-NNNN counters
    # ============================================================================
    op.create_table(
        'invoice_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prefix', 'year', name='uq_invoice_sequences_prefix_year'),
        sqlite_autoincrement=True
    )


def downgrade():
    for table in (
        'invoice_sequences',
        'sale_payments',
        'sale_discounts',
        'sale_details',
        'sales',
        'discount_codes',
        'purchase_payments',
        'purchase_details',
        'purchases',
        'inventory_movements',
        'inventories',
        'products',
        'customers',
        'customer_categories',
        'payment_methods',
        'suppliers',
        'branches',
        'units',
        'categories',
    ):
        op.drop_table(table)
