"""Till sessions: tenancy, catalog, stock, sessions, sales, loyalty, events

Revision ID: 20261019_till
Revises:
Create Date: 2026-10-19

This migration creates:
1. organizations, locations, operators
2. products, promotions, stock_entries
3. cash_sessions with the one-OPEN-session-per-location partial unique index
4. inventory_count_lines (INVENTORY_COUNT count sheets)
5. sale_transactions (one consolidated sale per session, partial unique index) and sale_lines
6. customers, loyalty_accounts, loyalty_transactions
7. till_events
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_till'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)


def upgrade():
    # ==========================================================================
    # 1. TENANCY
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    op.create_table('locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('default_operating_mode', sa.String(length=16), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_locations_org_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('locations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_locations_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_locations_is_active'), ['is_active'], unique=False)

    op.create_table('operators',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='operator'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'username', name='uq_operators_org_username'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('operators', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_operators_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_operators_location_id'), ['location_id'], unique=False)

    # ==========================================================================
    # 2. CATALOG AND STOCK
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.String(length=16), nullable=False, server_default='un'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'sku', name='uq_products_org_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_org_id'), ['org_id'], unique=False)
        batch_op.create_index('ix_products_org_active', ['org_id', 'is_active'], unique=False)

    op.create_table('promotions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('trigger_quantity', sa.Integer(), nullable=False),
        sa.Column('combo_price_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('promotions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_promotions_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_promotions_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_promotions_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_promotions_is_active'), ['is_active'], unique=False)

    op.create_table('stock_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'product_id', name='uq_stock_entries_location_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_entries_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_entries_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 3. CASH SESSIONS
    # ==========================================================================
    op.create_table('cash_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('operating_mode', sa.String(length=16), nullable=False, server_default='STANDARD'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('opened_by', sa.Integer(), nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('closed_by', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reconciled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('opening_float_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('system_sales_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('informed_total_cents', sa.Integer(), nullable=True),
        sa.Column('informed_cash_cents', sa.Integer(), nullable=True),
        sa.Column('informed_pix_cents', sa.Integer(), nullable=True),
        sa.Column('informed_card_cents', sa.Integer(), nullable=True),
        sa.Column('expected_total_cents', sa.Integer(), nullable=True),
        sa.Column('variance_cents', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['opened_by'], ['operators.id'], ),
        sa.ForeignKeyConstraint(['closed_by'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_sessions_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_sessions_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_sessions_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_sessions_opened_by'), ['opened_by'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_sessions_opened_at'), ['opened_at'], unique=False)
        batch_op.create_index('ix_cash_sessions_location_opened', ['location_id', 'opened_at'], unique=False)

    # Only one OPEN row per location; CLOSED rows do not participate
    op.create_index(
        'uq_cash_sessions_one_open_per_location',
        'cash_sessions',
        ['location_id'],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table('inventory_count_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('system_qty_at_open', sa.Integer(), nullable=False),
        sa.Column('counted_qty', sa.Integer(), nullable=True),
        sa.Column('counted_by', sa.Integer(), nullable=True),
        sa.Column('counted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['cash_sessions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['counted_by'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'product_id', name='uq_count_lines_session_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_count_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_count_lines_session_id'), ['session_id'], unique=False)

    # ==========================================================================
    # 4. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'phone', name='uq_customers_org_phone'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_org_id'), ['org_id'], unique=False)

    # ==========================================================================
    # 5. SALES
    # ==========================================================================
    op.create_table('sale_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('gross_total_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('net_total_cents', sa.Integer(), nullable=False),
        sa.Column('points_redeemed', sa.Integer(), nullable=False, server_default='0'),
        _created_at(),
        sa.ForeignKeyConstraint(['session_id'], ['cash_sessions.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_transactions_session_id'), ['session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_transactions_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_transactions_payment_method'), ['payment_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_transactions_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index('ix_sale_transactions_session_created', ['session_id', 'created_at'], unique=False)

    op.create_index(
        'uq_sale_transactions_one_consolidated_per_session',
        'sale_transactions',
        ['session_id'],
        unique=True,
        sqlite_where=sa.text("payment_method = 'consolidated'"),
        postgresql_where=sa.text("payment_method = 'consolidated'"),
    )

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_lines_sale_id'), ['sale_id'], unique=False)

    # ==========================================================================
    # 6. LOYALTY
    # ==========================================================================
    op.create_table('loyalty_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('points_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_points_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', name='uq_loyalty_accounts_customer'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('loyalty_accounts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loyalty_accounts_customer_id'), ['customer_id'], unique=False)

    op.create_table('loyalty_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['loyalty_accounts.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sale_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('loyalty_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loyalty_transactions_account_id'), ['account_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loyalty_transactions_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index('ix_loyalty_txns_account_occurred', ['account_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 7. TILL EVENTS
    # ==========================================================================
    op.create_table('till_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('actor_operator_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['session_id'], ['cash_sessions.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['actor_operator_id'], ['operators.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('till_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_till_events_location_id'), ['location_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_till_events_session_id'), ['session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_till_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index('ix_till_events_session_occurred', ['session_id', 'occurred_at'], unique=False)


def downgrade():
    op.drop_table('till_events')
    op.drop_table('loyalty_transactions')
    op.drop_table('loyalty_accounts')
    op.drop_table('sale_lines')
    op.drop_index('uq_sale_transactions_one_consolidated_per_session', table_name='sale_transactions')
    op.drop_table('sale_transactions')
    op.drop_table('customers')
    op.drop_table('inventory_count_lines')
    op.drop_index('uq_cash_sessions_one_open_per_location', table_name='cash_sessions')
    op.drop_table('cash_sessions')
    op.drop_table('stock_entries')
    op.drop_table('promotions')
    op.drop_table('products')
    op.drop_table('operators')
    op.drop_table('locations')
    op.drop_table('organizations')
