"""create_auctions_and_bids

Revision ID: 001_auctions_bids
Revises:
Create Date: 2026-10-18

Creates the auctions table (catalogue metadata, live bid state, payment
fields) and the append-only bids log.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_auctions_bids'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'auctions',
        sa.Column('auction_id', sa.String(64), primary_key=True),
        sa.Column('seller_id', sa.String(128), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('artist_name', sa.String(255), nullable=True),
        sa.Column('medium', sa.String(120), nullable=True),
        sa.Column('dimensions', sa.String(120), nullable=True),
        sa.Column('year', sa.String(16), nullable=True),
        sa.Column('condition', sa.String(120), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('starting_bid', sa.Numeric(12, 2), nullable=False),
        sa.Column('bid_increment', sa.Numeric(12, 2), nullable=False, server_default='1.00'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_bid', sa.Numeric(12, 2), nullable=False),
        sa.Column('highest_bidder', sa.String(128), nullable=True),
        sa.Column('bid_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('payment_status', sa.String(32), nullable=True),
        sa.Column('payment_id', sa.String(128), nullable=True),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('starting_bid > 0', name='chk_auction_starting_bid_positive'),
        sa.CheckConstraint('bid_increment > 0', name='chk_auction_increment_positive'),
        sa.CheckConstraint('current_bid >= starting_bid', name='chk_auction_current_bid'),
        sa.CheckConstraint('bid_count >= 0', name='chk_auction_bid_count'),
    )
    op.create_index('idx_auctions_status', 'auctions', ['status'])
    op.create_index('idx_auctions_seller', 'auctions', ['seller_id'])
    op.create_index('idx_auctions_location', 'auctions', ['location'])
    op.create_index('idx_auctions_time', 'auctions', ['start_time', 'end_time'])

    op.create_table(
        'bids',
        sa.Column('bid_id', sa.String(64), primary_key=True),
        sa.Column(
            'auction_id',
            sa.String(64),
            sa.ForeignKey('auctions.auction_id'),
            nullable=False,
        ),
        sa.Column('bidder_id', sa.String(128), nullable=False),
        sa.Column('bid_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('bid_time', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('bid_amount > 0', name='chk_bid_amount_positive'),
    )
    op.create_index('idx_bids_auction_time', 'bids', ['auction_id', 'bid_time'])
    op.create_index('idx_bids_bidder_time', 'bids', ['bidder_id', 'bid_time'])


def downgrade() -> None:
    op.drop_index('idx_bids_bidder_time', table_name='bids')
    op.drop_index('idx_bids_auction_time', table_name='bids')
    op.drop_table('bids')

    op.drop_index('idx_auctions_time', table_name='auctions')
    op.drop_index('idx_auctions_location', table_name='auctions')
    op.drop_index('idx_auctions_seller', table_name='auctions')
    op.drop_index('idx_auctions_status', table_name='auctions')
    op.drop_table('auctions')
