"""create index engine tables

Revision ID: 3c9d1f7a2e60
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c9d1f7a2e60'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Screening universe
    op.create_table(
        'tickers',
        sa.Column('ticker', sa.String(20), primary_key=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('asset_type', sa.String(10), nullable=True),
        sa.Column('sector', sa.String(100), nullable=True),
        sa.Column('industry', sa.String(100), nullable=True),
        sa.Column('current_price', sa.Float(), nullable=True),
        sa.Column('upside', sa.Float(), nullable=True),
        sa.Column('fair_value_model', sa.String(20), nullable=True),
        sa.Column('overall_score', sa.Float(), nullable=True),
        sa.Column('dividend_yield', sa.Float(), nullable=True),
        sa.Column('market_cap', sa.Float(), nullable=True),
        sa.Column('average_daily_volume', sa.Float(), nullable=True),
        sa.Column('technical_margin', sa.Float(), nullable=True),
        sa.Column('roe', sa.Float(), nullable=True),
        sa.Column('net_margin', sa.Float(), nullable=True),
        sa.Column('net_debt_ebitda', sa.Float(), nullable=True),
        sa.Column('payout', sa.Float(), nullable=True),
        sa.Column('pe', sa.Float(), nullable=True),
        sa.Column('pb', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'price_cache',
        sa.Column('ticker', sa.String(20), primary_key=True),
        sa.Column('price_date', sa.Date(), primary_key=True),
        sa.Column('open_price', sa.Float(), nullable=True),
        sa.Column('close_price', sa.Float(), nullable=False),
        sa.Column('fetched_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('source', sa.String(50), nullable=True),
    )
    op.create_index('idx_price_cache_date', 'price_cache', ['price_date'])

    op.create_table(
        'index_definitions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('ticker', sa.String(20), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('base_value', sa.Float(), nullable=False, server_default='100.0'),
        sa.Column('inception_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'index_composition',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('index_id', sa.String(36), sa.ForeignKey('index_definitions.id'), nullable=False),
        sa.Column('ticker', sa.String(20), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('entry_price', sa.Float(), nullable=True),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('exit_price', sa.Float(), nullable=True),
        sa.Column('exit_date', sa.Date(), nullable=True),
    )
    op.create_index(
        'idx_composition_index_dates',
        'index_composition',
        ['index_id', 'entry_date', 'exit_date']
    )
    # At most one open span per (index, ticker)
    op.create_index(
        'uq_composition_open_ticker',
        'index_composition',
        ['index_id', 'ticker'],
        unique=True,
        sqlite_where=sa.text('exit_date IS NULL'),
        postgresql_where=sa.text('exit_date IS NULL'),
    )

    op.create_table(
        'index_history_points',
        sa.Column('index_id', sa.String(36), sa.ForeignKey('index_definitions.id'), primary_key=True, nullable=False),
        sa.Column('date', sa.Date(), primary_key=True, nullable=False),
        sa.Column('point', sa.Float(), nullable=False),
        sa.Column('daily_change', sa.Float(), nullable=False, server_default='0'),
        sa.Column('dividends_received', sa.Float(), nullable=False, server_default='0'),
        sa.Column('dividends_by_ticker', sa.JSON(), nullable=True),
        sa.Column('daily_contributions_by_ticker', sa.JSON(), nullable=True),
        sa.Column('composition_snapshot', sa.JSON(), nullable=True),
        sa.Column('current_yield', sa.Float(), nullable=True),
        sa.Column('is_virtual', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_consistent', sa.Boolean(), server_default=sa.true()),
        sa.Column('consistency_difference', sa.Float(), server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'index_rebalance_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('index_id', sa.String(36), sa.ForeignKey('index_definitions.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('action', sa.String(10), nullable=False),
        sa.Column('ticker', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('idx_rebalance_log_index_date', 'index_rebalance_log', ['index_id', 'date'])

    op.create_table(
        'cron_checkpoints',
        sa.Column('job_type', sa.String(50), primary_key=True),
        sa.Column('index_key', sa.String(64), primary_key=True),
        sa.Column('last_processed_index_id', sa.String(36), nullable=True),
        sa.Column('last_processed_date', sa.Date(), nullable=True),
        sa.Column('processed_count', sa.Integer(), server_default='0'),
        sa.Column('total_count', sa.Integer(), server_default='0'),
        sa.Column('errors', sa.JSON(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), onupdate=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('cron_checkpoints')
    op.drop_index('idx_rebalance_log_index_date', table_name='index_rebalance_log')
    op.drop_table('index_rebalance_log')
    op.drop_table('index_history_points')
    op.drop_index('uq_composition_open_ticker', table_name='index_composition')
    op.drop_index('idx_composition_index_dates', table_name='index_composition')
    op.drop_table('index_composition')
    op.drop_table('index_definitions')
    op.drop_index('idx_price_cache_date', table_name='price_cache')
    op.drop_table('price_cache')
    op.drop_table('tickers')
