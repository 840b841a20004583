"""
TransactionLedger: the user's wallet.

Every balance movement is a single conditional UPDATE so concurrent requests
can never overdraw a wallet or approve the same recharge twice.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.service import AuditAction, AuditLogger, AuditSeverity
from services.notification_service.service import NotificationDispatcher, NotificationType, dispatch_safely
from shared.errors import ForbiddenError, InsufficientWalletBalanceError, NotFoundError, ValidationError
from shared.observability import ecomm_auto_approvals_total
from shared.security.dependencies import RequestMeta
from .metadata import (
    BankAutoApproved,
    ManualReview,
    OrderPurchase,
    RechargeRequested,
    TransactionMetadata,
    UserCancelled,
)
from .models import Transaction, TransactionStatus, TransactionType, UserBalance
from .repository import BalanceRepository, TransactionRepository

logger = structlog.get_logger(__name__)

AUTO_APPROVE_TOLERANCE = Decimal("0.005")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class ApprovalResult:
    approved: bool
    reason: str  # 'approved' | 'amount_mismatch' | 'already_processed' | 'not_recharge'


class TransactionLedger:
    def __init__(
        self,
        audit: AuditLogger,
        notifier: NotificationDispatcher,
        tolerance: Decimal = AUTO_APPROVE_TOLERANCE,
    ):
        self.audit = audit
        self.notifier = notifier
        self.tolerance = Decimal(str(tolerance))

    async def _load_owned(
        self,
        db: AsyncSession,
        transaction_id: int,
        user_id: str,
        operation: str,
        request_meta: Optional[RequestMeta] = None,
    ) -> Transaction:
        transaction = await TransactionRepository.get(db, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")
        owner_id = transaction.balance.user_id
        if owner_id != user_id:
            await self.audit.log(
                AuditAction.IDOR_ATTEMPT,
                severity=AuditSeverity.CRITICAL,
                actor_id=user_id,
                target_type="transaction",
                target_id=transaction_id,
                details={"operation": operation, "owner_id": owner_id},
                request_meta=request_meta,
            )
            raise ForbiddenError("You are not allowed to modify this transaction")
        return transaction

    async def auto_approve(
        self,
        db: AsyncSession,
        transaction_id: int,
        requester_id: str,
        verified_amount_bs: Decimal,
        requested_amount_bs: Decimal,
        verification_id: Optional[int] = None,
        bank_code: Optional[int] = None,
        request_meta: Optional[RequestMeta] = None,
    ) -> ApprovalResult:
        """Completes a PENDING recharge once the bank confirmed enough bolivares."""
        try:
            transaction = await self._load_owned(db, transaction_id, requester_id, "auto_approve", request_meta)
        except ForbiddenError:
            ecomm_auto_approvals_total.labels(outcome="idor").inc()
            raise

        if transaction.status != TransactionStatus.PENDING:
            ecomm_auto_approvals_total.labels(outcome="already_processed").inc()
            return ApprovalResult(False, "already_processed")
        if transaction.type != TransactionType.RECHARGE:
            return ApprovalResult(False, "not_recharge")

        metadata = TransactionMetadata.load(transaction.details)
        requested = Decimal(str(requested_amount_bs))
        recorded = metadata.latest("recharge_requested")
        if recorded is not None and recorded.amount_bs is not None:
            requested = max(requested, recorded.amount_bs)

        verified = Decimal(str(verified_amount_bs))
        if verified < requested * (1 - self.tolerance):
            ecomm_auto_approvals_total.labels(outcome="amount_mismatch").inc()
            logger.warning(
                "auto_approve_amount_mismatch",
                transaction_id=transaction_id,
                verified_bs=str(verified),
                requested_bs=str(requested),
            )
            return ApprovalResult(False, "amount_mismatch")

        metadata = metadata.with_event(BankAutoApproved(
            verification_id=verification_id,
            bank_code=bank_code,
            verified_amount_bs=verified,
            requested_amount_bs=requested,
        ))
        moved = await TransactionRepository.finish_pending(
            db, transaction_id, TransactionStatus.COMPLETED, metadata.dump()
        )
        if not moved:
            await db.rollback()
            ecomm_auto_approvals_total.labels(outcome="already_processed").inc()
            return ApprovalResult(False, "already_processed")
        await BalanceRepository.credit_recharge(db, transaction.balance_id, transaction.amount)
        await db.commit()

        ecomm_auto_approvals_total.labels(outcome="approved").inc()
        logger.info("recharge_auto_approved", transaction_id=transaction_id, user_id=requester_id)
        await self.audit.log(
            AuditAction.RECHARGE_AUTO_APPROVED,
            actor_id=requester_id,
            target_type="transaction",
            target_id=transaction_id,
            details={
                "amount_usd": str(transaction.amount),
                "verified_amount_bs": str(verified),
                "requested_amount_bs": str(requested),
                "verification_id": verification_id,
            },
            request_meta=request_meta,
        )
        await dispatch_safely(
            self.notifier.notify(
                requester_id,
                NotificationType.RECHARGE_APPROVED,
                "Recharge approved",
                f"${transaction.amount} was added to your balance.",
                link="/balance",
            ),
            transaction_id=transaction_id,
        )
        return ApprovalResult(True, "approved")

    async def charge_purchase(
        self,
        db: AsyncSession,
        user_id: str,
        amount: Decimal,
        currency: str,
        order_number: str,
    ) -> Transaction:
        """Debits the wallet for an order. Runs inside the caller's unit of work; does not commit."""
        balance_id = await BalanceRepository.debit_if_sufficient(db, user_id, amount)
        if balance_id is None:
            balance = await BalanceRepository.get_by_user(db, user_id)
            available = balance.balance if balance is not None else Decimal("0")
            raise InsufficientWalletBalanceError(
                f"Insufficient balance. Available: ${available}, required: ${amount}",
                details={"available": float(available), "required": float(amount)},
            )
        transaction = Transaction(
            balance_id=balance_id,
            type=TransactionType.PURCHASE,
            status=TransactionStatus.COMPLETED,
            amount=amount,
            currency=currency,
            description=f"Purchase - Order {order_number}",
            payment_method="WALLET",
            details=TransactionMetadata().with_event(OrderPurchase(order_number=order_number)).dump(),
        )
        await TransactionRepository.add(db, transaction)
        logger.info("wallet_charged", user_id=user_id, amount=str(amount), order_number=order_number)
        return transaction

    async def create_recharge(
        self,
        db: AsyncSession,
        user_id: str,
        amount_usd: Decimal,
        payment_method: str,
        reference: Optional[str] = None,
        exchange_rate_ves: Optional[Decimal] = None,
    ) -> Transaction:
        balance = await BalanceRepository.get_or_create(db, user_id)
        amount_bs = None
        if exchange_rate_ves is not None:
            amount_bs = (amount_usd * exchange_rate_ves).quantize(CENT)
        event = RechargeRequested(
            payment_method=payment_method,
            reference=reference,
            exchange_rate_ves=exchange_rate_ves,
            amount_bs=amount_bs,
        )
        transaction = Transaction(
            balance_id=balance.id,
            type=TransactionType.RECHARGE,
            status=TransactionStatus.PENDING,
            amount=amount_usd,
            currency="USD",
            description=f"Balance recharge via {payment_method}",
            reference=reference,
            payment_method=payment_method,
            details=TransactionMetadata().with_event(event).dump(),
        )
        await TransactionRepository.add(db, transaction)
        await db.commit()
        await db.refresh(transaction)

        logger.info("recharge_requested", user_id=user_id, transaction_id=transaction.id,
                    amount=str(amount_usd), payment_method=payment_method)
        await dispatch_safely(
            self.notifier.notify(
                user_id,
                NotificationType.RECHARGE_REQUESTED,
                "Recharge requested",
                f"Your ${amount_usd} recharge is waiting for payment verification.",
                link="/balance",
            ),
            transaction_id=transaction.id,
        )
        return transaction

    async def cancel_recharge(
        self,
        db: AsyncSession,
        transaction_id: int,
        user_id: str,
        request_meta: Optional[RequestMeta] = None,
    ) -> Transaction:
        transaction = await self._load_owned(db, transaction_id, user_id, "cancel_recharge", request_meta)
        if transaction.type != TransactionType.RECHARGE or transaction.status != TransactionStatus.PENDING:
            raise ValidationError("Only pending recharges can be cancelled")

        metadata = TransactionMetadata.load(transaction.details).with_event(UserCancelled())
        if not await TransactionRepository.finish_pending(
            db, transaction_id, TransactionStatus.CANCELLED, metadata.dump()
        ):
            await db.rollback()
            raise ValidationError("Only pending recharges can be cancelled")
        await db.commit()
        await db.refresh(transaction)
        logger.info("recharge_cancelled", user_id=user_id, transaction_id=transaction_id)
        return transaction

    async def review_recharge(
        self,
        db: AsyncSession,
        transaction_id: int,
        reviewer_id: str,
        approve: bool,
        note: Optional[str] = None,
        request_meta: Optional[RequestMeta] = None,
    ) -> Transaction:
        transaction = await TransactionRepository.get(db, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")
        if transaction.status != TransactionStatus.PENDING:
            raise ValidationError("Transaction already processed")

        metadata = TransactionMetadata.load(transaction.details).with_event(
            ManualReview(reviewer_id=reviewer_id, approved=approve, note=note)
        )
        new_status = TransactionStatus.COMPLETED if approve else TransactionStatus.FAILED
        if not await TransactionRepository.finish_pending(db, transaction_id, new_status, metadata.dump()):
            await db.rollback()
            raise ValidationError("Transaction already processed")
        if approve and transaction.type == TransactionType.RECHARGE:
            await BalanceRepository.credit_recharge(db, transaction.balance_id, transaction.amount)
        await db.commit()
        await db.refresh(transaction)

        owner_id = transaction.balance.user_id
        await self.audit.log(
            AuditAction.RECHARGE_REVIEWED,
            actor_id=reviewer_id,
            target_type="transaction",
            target_id=transaction_id,
            details={"approved": approve, "note": note, "owner_id": owner_id},
            request_meta=request_meta,
        )
        if approve:
            notification = (NotificationType.RECHARGE_APPROVED, "Recharge approved",
                            f"${transaction.amount} was added to your balance.")
        else:
            notification = (NotificationType.RECHARGE_REJECTED, "Recharge rejected",
                            note or "Your recharge could not be verified.")
        await dispatch_safely(
            self.notifier.notify(owner_id, *notification, link="/balance"),
            transaction_id=transaction_id,
        )
        return transaction

    async def get_balance(self, db: AsyncSession, user_id: str,
                          limit: int = 20) -> tuple[UserBalance, list[Transaction]]:
        balance = await BalanceRepository.get_or_create(db, user_id)
        await db.commit()
        transactions = await TransactionRepository.list_for_balance(db, balance.id, limit=limit)
        return balance, transactions


def get_ledger(request: Request) -> TransactionLedger:
    return request.app.state.ledger
