"""initial boutique schema

Revision ID: b0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete boutique schema:
- articles / variants: catalog with dual-location balances (store, warehouse)
- stock_movements: append-only movement log with per-location deltas
- customers, transactions, transaction_lines: commercial records
- carts, cart_lines: open POS carts (holds against store stock)
- shift_sessions, shift_records: live shifts and settlement snapshots
- audit_events, document_sequences: operator audit log and numbering
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # articles / variants: catalog and live balances
    # ============================================================================
    op.create_table(
        'articles',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('material_type', sa.String(length=128), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_articles_category', 'articles', ['category'])
    op.create_index('ix_articles_category_name', 'articles', ['category', 'name'])

    op.create_table(
        'variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('article_id', sa.String(length=64), nullable=False),
        sa.Column('size_label', sa.String(length=32), nullable=False),
        sa.Column('size_internal', sa.String(length=32), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('store_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('warehouse_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('barcode', sa.String(length=128), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['article_id'], ['articles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('article_id', 'size_internal', name='uq_variants_article_size'),
        sa.UniqueConstraint('barcode', name='uq_variants_barcode'),
        sa.CheckConstraint('store_qty >= 0', name='ck_variants_store_qty_non_negative'),
        sa.CheckConstraint('warehouse_qty >= 0', name='ck_variants_warehouse_qty_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_variants_article_id', 'variants', ['article_id'])

    # ============================================================================
    # stock_movements: append-only log (no FK to articles; history outlives them)
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('article_id', sa.String(length=64), nullable=False),
        sa.Column('article_name', sa.String(length=255), nullable=False),
        sa.Column('size_internal', sa.String(length=32), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('location', sa.String(length=16), nullable=False),
        sa.Column('channel', sa.String(length=16), nullable=True),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('store_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('warehouse_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requested_quantity', sa.Integer(), nullable=True),
        sa.Column('post_store_qty', sa.Integer(), nullable=False),
        sa.Column('post_warehouse_qty', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_occurred_at', 'stock_movements', ['occurred_at'])
    op.create_index('ix_stock_movements_article_id', 'stock_movements', ['article_id'])
    op.create_index('ix_stock_movements_kind', 'stock_movements', ['kind'])
    op.create_index('ix_stock_movements_channel', 'stock_movements', ['channel'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference'])
    op.create_index('ix_movements_variant_occurred', 'stock_movements',
                    ['article_id', 'size_internal', 'occurred_at'])
    op.create_index('ix_movements_channel_occurred', 'stock_movements', ['channel', 'occurred_at'])

    # ============================================================================
    # customers
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent_cents', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone', name='uq_customers_phone'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_name', 'customers', ['name'])

    # ============================================================================
    # transactions / transaction_lines: immutable commercial records
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_number', sa.String(length=32), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('order_discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=8), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_partial', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cash_received_cents', sa.Integer(), nullable=True),
        sa.Column('change_cents', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('shift', sa.String(length=8), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('cashier_name', sa.String(length=128), nullable=False),
        sa.Column('external_order_id', sa.String(length=64), nullable=True),
        sa.Column('recipient_name', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('original_transaction_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['original_transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_number', name='uq_transactions_document_number'),
        sa.UniqueConstraint('original_transaction_id', name='uq_transactions_original'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_occurred_at', 'transactions', ['occurred_at'])
    op.create_index('ix_transactions_type', 'transactions', ['type'])
    op.create_index('ix_transactions_customer_id', 'transactions', ['customer_id'])
    op.create_index('ix_transactions_business_date', 'transactions', ['business_date'])
    op.create_index('ix_transactions_cashier_name', 'transactions', ['cashier_name'])
    op.create_index('ix_transactions_external_order_id', 'transactions', ['external_order_id'])
    op.create_index('ix_transactions_type_occurred', 'transactions', ['type', 'occurred_at'])
    op.create_index('ix_transactions_business_date_shift', 'transactions', ['business_date', 'shift'])

    op.create_table(
        'transaction_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=False),
        sa.Column('article_id', sa.String(length=64), nullable=False),
        sa.Column('article_name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('size_label', sa.String(length=32), nullable=False),
        sa.Column('size_internal', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('effective_unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['movement_id'], ['stock_movements.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'line_number', name='uq_transaction_lines_number'),
        sa.UniqueConstraint('movement_id', name='uq_transaction_lines_movement'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_lines_transaction_id', 'transaction_lines', ['transaction_id'])
    op.create_index('ix_transaction_lines_article_id', 'transaction_lines', ['article_id'])

    # ============================================================================
    # carts / cart_lines: open POS carts
    # ============================================================================
    op.create_table(
        'carts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cashier_name', sa.String(length=128), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_carts_cashier_name', 'carts', ['cashier_name'])
    op.create_index('ix_carts_status', 'carts', ['status'])

    op.create_table(
        'cart_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cart_id', sa.Integer(), nullable=False),
        sa.Column('article_id', sa.String(length=64), nullable=False),
        sa.Column('size_internal', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=True),
        sa.ForeignKeyConstraint(['cart_id'], ['carts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cart_id', 'article_id', 'size_internal', name='uq_cart_lines_variant'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cart_lines_cart_id', 'cart_lines', ['cart_id'])

    # ============================================================================
    # shift_sessions / shift_records
    # ============================================================================
    op.create_table(
        'shift_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cashier_name', sa.String(length=128), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('shift', sa.String(length=8), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cashier_name', name='uq_shift_sessions_cashier'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'shift_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cashier_name', sa.String(length=128), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('shift', sa.String(length=8), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('card_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_shift_records_cashier_name', 'shift_records', ['cashier_name'])
    op.create_index('ix_shift_records_business_date', 'shift_records', ['business_date'])

    # ============================================================================
    # audit_events / document_sequences
    # ============================================================================
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('actor', sa.String(length=128), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('entity_type', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_events_occurred_at', 'audit_events', ['occurred_at'])
    op.create_index('ix_audit_events_action', 'audit_events', ['action'])
    op.create_index('ix_audit_events_action_occurred', 'audit_events', ['action', 'occurred_at'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', name='uq_doc_sequences_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('audit_events')
    op.drop_table('shift_records')
    op.drop_table('shift_sessions')
    op.drop_table('cart_lines')
    op.drop_table('carts')
    op.drop_table('transaction_lines')
    op.drop_table('transactions')
    op.drop_table('customers')
    op.drop_table('stock_movements')
    op.drop_table('variants')
    op.drop_table('articles')
