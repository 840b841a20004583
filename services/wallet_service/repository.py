from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from .models import Transaction, TransactionStatus, UserBalance


class BalanceRepository:

    @staticmethod
    async def get_by_user(db: AsyncSession, user_id: str) -> Optional[UserBalance]:
        result = await db.execute(select(UserBalance).where(UserBalance.user_id == user_id))
        return result.scalars().first()

    @staticmethod
    async def get_or_create(db: AsyncSession, user_id: str) -> UserBalance:
        balance = await BalanceRepository.get_by_user(db, user_id)
        if balance is None:
            balance = UserBalance(
                user_id=user_id,
                balance=Decimal("0"),
                total_spent=Decimal("0"),
                total_recharges=Decimal("0"),
            )
            db.add(balance)
            await db.flush()
        return balance

    @staticmethod
    async def debit_if_sufficient(db: AsyncSession, user_id: str, amount: Decimal) -> Optional[int]:
        """Conditional single-statement debit. Returns the balance id, or None when funds are short."""
        result = await db.execute(
            update(UserBalance)
            .where(UserBalance.user_id == user_id, UserBalance.balance >= amount)
            .values(
                balance=UserBalance.balance - amount,
                total_spent=UserBalance.total_spent + amount,
            )
            .returning(UserBalance.id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def credit_recharge(db: AsyncSession, balance_id: int, amount: Decimal) -> None:
        await db.execute(
            update(UserBalance)
            .where(UserBalance.id == balance_id)
            .values(
                balance=UserBalance.balance + amount,
                total_recharges=UserBalance.total_recharges + amount,
            )
            .execution_options(synchronize_session=False)
        )


class TransactionRepository:

    @staticmethod
    async def add(db: AsyncSession, transaction: Transaction) -> Transaction:
        db.add(transaction)
        await db.flush()
        return transaction

    @staticmethod
    async def get(db: AsyncSession, transaction_id: int) -> Optional[Transaction]:
        # Re-read even when the row is already in the identity map; status moves via bulk UPDATEs
        result = await db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_for_balance(db: AsyncSession, balance_id: int, limit: int = 20) -> list[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.balance_id == balance_id)
            .order_by(Transaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def finish_pending(
        db: AsyncSession, transaction_id: int, status: TransactionStatus, details: dict
    ) -> bool:
        """PENDING -> terminal. False when another request already moved it."""
        result = await db.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.status == TransactionStatus.PENDING)
            .values({Transaction.status: status, Transaction.details: details})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
