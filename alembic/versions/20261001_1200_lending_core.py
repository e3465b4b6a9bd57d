"""Create users, loans, installments and NFT loan tables

Revision ID: 3f9c2a7d1b04
Revises:
Create Date: 2026-10-01 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1b04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names, matching SQLAlchemy's default for Python enums
user_role = sa.Enum('USER', 'ADMIN', name='userrole')
kyc_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='kycstatus')
loan_purpose = sa.Enum(
    'PERSONAL', 'BUSINESS', 'EDUCATION', 'HOME_IMPROVEMENT', 'DEBT_CONSOLIDATION',
    'MEDICAL', 'INVESTMENT', 'OTHER', name='loanpurpose'
)
loan_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'ACTIVE', 'COMPLETED', 'DEFAULTED', name='loanstatus')
installment_status = sa.Enum('PENDING', 'PAID', 'OVERDUE', name='installmentstatus')
collateral_type = sa.Enum('NFT', 'CRYPTO', 'REAL_ESTATE', 'VEHICLE', 'OTHER', name='collateraltype')
marketplace_status = sa.Enum('NOT_LISTED', 'LISTED', 'SOLD', name='marketplacestatus')


def upgrade() -> None:
    # ============================================================
    # Users Table
    # ============================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('profile_picture', sa.String(length=500), nullable=True),
        sa.Column('street', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('zip_code', sa.String(length=20), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('wallet_address', sa.String(length=42), nullable=True),
        sa.Column('is_wallet_user', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('kyc_status', kyc_status, nullable=False),
        sa.Column('kyc_rejection_reason', sa.Text(), nullable=True),
        sa.Column('kyc_reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('kyc_reviewer_id', sa.Integer(), nullable=True),
        sa.Column('id_document', sa.String(length=500), nullable=True),
        sa.Column('proof_of_address', sa.String(length=500), nullable=True),
        sa.Column('proof_of_income', sa.String(length=500), nullable=True),
        sa.Column('kyc_documents_uploaded_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_wallet_address'), 'users', ['wallet_address'], unique=True)

    # ============================================================
    # Loans Table
    # ============================================================
    op.create_table('loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('purpose', loan_purpose, nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('term_months', sa.Integer(), nullable=False),
        sa.Column('status', loan_status, nullable=False),
        sa.Column('request_date', sa.DateTime(), nullable=False),
        sa.Column('approval_date', sa.DateTime(), nullable=True),
        sa.Column('rejection_date', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('collateral_type', collateral_type, nullable=True),
        sa.Column('collateral_value', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('collateral_description', sa.Text(), nullable=True),
        sa.Column('nft_token_id', sa.String(length=100), nullable=True),
        sa.Column('nft_contract_address', sa.String(length=42), nullable=True),
        sa.Column('nft_transaction_hash', sa.String(length=66), nullable=True),
        sa.Column('total_repaid', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0.00'),
        sa.Column('remaining_balance', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loans_id'), 'loans', ['id'], unique=False)
    op.create_index(op.f('ix_loans_user_id'), 'loans', ['user_id'], unique=False)
    op.create_index(op.f('ix_loans_status'), 'loans', ['status'], unique=False)

    # ============================================================
    # Loan Installments Table
    # ============================================================
    op.create_table('loan_installments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('installment_number', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('principal', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('interest', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('status', installment_status, nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0.00'),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['loan_id'], ['loans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loan_installments_id'), 'loan_installments', ['id'], unique=False)
    op.create_index(op.f('ix_loan_installments_loan_id'), 'loan_installments', ['loan_id'], unique=False)

    # ============================================================
    # NFT Loans Table
    # ============================================================
    op.create_table('nft_loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('token_id', sa.String(length=100), nullable=False),
        sa.Column('contract_address', sa.String(length=42), nullable=False),
        sa.Column('transaction_hash', sa.String(length=66), nullable=False),
        sa.Column('block_number', sa.Integer(), nullable=True),
        sa.Column('owner_address', sa.String(length=42), nullable=False),
        sa.Column('token_metadata', sa.JSON(), nullable=False),
        sa.Column('ipfs_hash', sa.String(length=100), nullable=True),
        sa.Column('quicknode_url', sa.String(length=500), nullable=True),
        sa.Column('minted_at', sa.DateTime(), nullable=False),
        sa.Column('network', sa.String(length=20), nullable=False, server_default='sepolia'),
        sa.Column('marketplace_status', marketplace_status, nullable=False),
        sa.Column('listing_price', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('listing_date', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['loan_id'], ['loans.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_nft_loans_id'), 'nft_loans', ['id'], unique=False)
    op.create_index(op.f('ix_nft_loans_loan_id'), 'nft_loans', ['loan_id'], unique=True)
    op.create_index(op.f('ix_nft_loans_token_id'), 'nft_loans', ['token_id'], unique=False)
    op.create_index(op.f('ix_nft_loans_contract_address'), 'nft_loans', ['contract_address'], unique=False)
    op.create_index(op.f('ix_nft_loans_owner_address'), 'nft_loans', ['owner_address'], unique=False)
    op.create_index(op.f('ix_nft_loans_marketplace_status'), 'nft_loans', ['marketplace_status'], unique=False)

    # ============================================================
    # NFT Ownership Transfers Table
    # ============================================================
    op.create_table('nft_ownership_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('nft_loan_id', sa.Integer(), nullable=False),
        sa.Column('address', sa.String(length=42), nullable=False),
        sa.Column('transfer_date', sa.DateTime(), nullable=False),
        sa.Column('transaction_hash', sa.String(length=66), nullable=True),
        sa.ForeignKeyConstraint(['nft_loan_id'], ['nft_loans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_nft_ownership_transfers_id'), 'nft_ownership_transfers', ['id'], unique=False)
    op.create_index(
        op.f('ix_nft_ownership_transfers_nft_loan_id'), 'nft_ownership_transfers', ['nft_loan_id'], unique=False
    )


def downgrade() -> None:
    op.drop_table('nft_ownership_transfers')
    op.drop_table('nft_loans')
    op.drop_table('loan_installments')
    op.drop_table('loans')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        marketplace_status, collateral_type, installment_status, loan_status, loan_purpose, kyc_status, user_role
    ):
        enum_type.drop(bind, checkfirst=True)
