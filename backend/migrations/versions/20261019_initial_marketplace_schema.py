"""Initial marketplace schema: users, sessions, books, purchases, webhook deliveries

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. users and session_tokens (bearer-token auth)
2. books (listings; `sold` owned by the purchase lifecycle)
3. purchases with the fee-split check and the two partial unique indexes
   (one live purchase per book+buyer, one pending purchase per book)
4. webhook_deliveries (reconciler decisions)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. USERS / SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('stripe_account_id', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_is_revoked'), ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. BOOKS
    # ==========================================================================
    op.create_table('books',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('author', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('sold', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('isbn_10', sa.String(length=10), nullable=True),
        sa.Column('isbn_13', sa.String(length=13), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cover_image_url', sa.String(length=1024), nullable=True),
        sa.Column('publisher', sa.String(length=255), nullable=True),
        sa.Column('publication_year', sa.Integer(), nullable=True),
        sa.Column('page_count', sa.Integer(), nullable=True),
        sa.Column('identified_by', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('price >= 0', name='ck_books_price_non_negative'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('books', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_books_owner_id'), ['owner_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_books_sold'), ['sold'], unique=False)
        batch_op.create_index(batch_op.f('ix_books_isbn_10'), ['isbn_10'], unique=False)
        batch_op.create_index(batch_op.f('ix_books_isbn_13'), ['isbn_13'], unique=False)
        batch_op.create_index('ix_books_owner_sold', ['owner_id', 'sold'], unique=False)

    # ==========================================================================
    # 3. PURCHASES
    # ==========================================================================
    op.create_table('purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('book_id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('platform_fee_cents', sa.Integer(), nullable=False),
        sa.Column('seller_amount_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('checkout_session_id', sa.String(length=255), nullable=True),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('shipping_name', sa.String(length=255), nullable=True),
        sa.Column('shipping_address_line1', sa.String(length=255), nullable=True),
        sa.Column('shipping_address_line2', sa.String(length=255), nullable=True),
        sa.Column('shipping_city', sa.String(length=128), nullable=True),
        sa.Column('shipping_state', sa.String(length=128), nullable=True),
        sa.Column('shipping_postal_code', sa.String(length=32), nullable=True),
        sa.Column('shipping_country', sa.String(length=2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint("status IN ('pending', 'completed', 'cancelled')", name='ck_purchases_status'),
        sa.CheckConstraint(
            'amount_cents >= 0 AND platform_fee_cents >= 0 AND seller_amount_cents >= 0',
            name='ck_purchases_amounts_non_negative',
        ),
        sa.CheckConstraint('amount_cents = platform_fee_cents + seller_amount_cents', name='ck_purchases_fee_split'),
        sa.CheckConstraint('buyer_id <> seller_id', name='ck_purchases_buyer_not_seller'),
        sa.ForeignKeyConstraint(['book_id'], ['books.id'], ),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchases', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_purchases_book_id'), ['book_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchases_buyer_id'), ['buyer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchases_seller_id'), ['seller_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchases_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_purchases_checkout_session_id'), ['checkout_session_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_purchases_payment_intent_id'), ['payment_intent_id'], unique=False)
        batch_op.create_index('ix_purchases_book_status', ['book_id', 'status'], unique=False)

    # Partial unique indexes are the authoritative duplicate guards
    op.create_index(
        'uq_purchases_book_buyer_active', 'purchases', ['book_id', 'buyer_id'], unique=True,
        sqlite_where=sa.text("status IN ('pending', 'completed')"),
        postgresql_where=sa.text("status IN ('pending', 'completed')"),
    )
    op.create_index(
        'uq_purchases_book_pending', 'purchases', ['book_id'], unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    # ==========================================================================
    # 4. WEBHOOK DELIVERIES
    # ==========================================================================
    op.create_table('webhook_deliveries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_event_id', sa.String(length=255), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('lookup_key', sa.String(length=255), nullable=True),
        sa.Column('purchase_id', sa.Integer(), nullable=True),
        sa.Column('outcome', sa.String(length=16), nullable=False),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('webhook_deliveries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_webhook_deliveries_provider_event_id'), ['provider_event_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_webhook_deliveries_lookup_key'), ['lookup_key'], unique=False)
        batch_op.create_index(batch_op.f('ix_webhook_deliveries_purchase_id'), ['purchase_id'], unique=False)
        batch_op.create_index('ix_webhook_deliveries_outcome_received', ['outcome', 'received_at'], unique=False)


def downgrade():
    op.drop_table('webhook_deliveries')
    op.drop_index('uq_purchases_book_pending', table_name='purchases')
    op.drop_index('uq_purchases_book_buyer_active', table_name='purchases')
    op.drop_table('purchases')
    op.drop_table('books')
    op.drop_table('session_tokens')
    op.drop_table('users')
