"""
PaymentVerificationGateway: Pago Movil verification against BDV.

Flow: validate -> duplicate precheck -> bank call (no DB transaction open) ->
record the attempt in its own short transaction -> optional recharge
auto-approval. The partial unique index on verified references is the last
word on duplicates; the precheck only saves a bank round trip.
"""
import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import structlog
from fastapi import Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.service import AuditAction, AuditLogger, AuditSeverity
from services.wallet_service.service import TransactionLedger
from shared.errors import ValidationError
from shared.observability import ecomm_duplicate_reference_total, ecomm_pago_movil_verifications_total
from shared.security.dependencies import RequestMeta
from .bank_client import BankVerificationResult, BdvClient
from .banks import (
    clean_national_id,
    clean_phone,
    clean_reference,
    describe_bank_error,
    get_bank,
    is_valid_national_id,
    is_valid_phone,
    is_valid_reference,
)
from .guard import DuplicateReferenceGuard
from .models import PagoMovilVerificacion, VerificationContext

logger = structlog.get_logger(__name__)

MAX_AMOUNT_BS = Decimal("3000000")
MAX_PAYMENT_AGE_DAYS = 30
DUPLICATE_REFERENCE_CODE = 4001


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class VerificationStatus(str, enum.Enum):
    VERIFIED = "VERIFIED"
    NOT_VERIFIED = "NOT_VERIFIED"
    DUPLICATE_REFERENCE = "DUPLICATE_REFERENCE"


@dataclass(frozen=True)
class VerificationResult:
    status: VerificationStatus
    message: str
    code: Optional[int] = None
    amount: Optional[Decimal] = None
    auto_approved: Optional[bool] = None
    verification_id: Optional[int] = None

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED

    @property
    def requires_contact(self) -> bool:
        return self.status is VerificationStatus.DUPLICATE_REFERENCE


class PaymentVerificationGateway:
    def __init__(
        self,
        bank_client: BdvClient,
        ledger: TransactionLedger,
        audit: AuditLogger,
        max_amount_bs: Decimal = MAX_AMOUNT_BS,
        max_age_days: int = MAX_PAYMENT_AGE_DAYS,
        today: Callable[[], date] = utc_today,
    ):
        self.bank_client = bank_client
        self.ledger = ledger
        self.audit = audit
        self.max_amount_bs = Decimal(str(max_amount_bs))
        self.max_age_days = max_age_days
        self._today = today

    def validate(
        self,
        payer_phone: str,
        bank_code: str,
        reference: str,
        payment_date: date,
        amount_bs: Decimal,
        payer_id: Optional[str] = None,
    ) -> None:
        if payer_id and not is_valid_national_id(payer_id):
            raise ValidationError("Invalid national ID. Example: V12345678")
        if not is_valid_phone(payer_phone):
            raise ValidationError("Invalid phone number. Example: 04121234567")
        if get_bank(bank_code) is None:
            raise ValidationError(f"Unknown bank code: {bank_code}")
        if not is_valid_reference(reference):
            raise ValidationError("The reference must have between 4 and 8 digits")
        if amount_bs <= 0 or amount_bs > self.max_amount_bs:
            raise ValidationError(f"The amount must be greater than 0 and at most Bs {self.max_amount_bs}")
        today = self._today()
        if payment_date > today:
            raise ValidationError("The payment date cannot be in the future")
        if payment_date < today - timedelta(days=self.max_age_days):
            raise ValidationError(f"The payment date cannot be older than {self.max_age_days} days")

    @staticmethod
    def _claim(original: Optional[PagoMovilVerificacion]) -> Optional[dict]:
        """Plain copy of the consuming attempt, safe to use after the session rolls back."""
        if original is None:
            return None
        return {
            "original_user_id": original.user_id,
            "original_verification_id": original.id,
            "original_verified_at": original.created_at.isoformat() if original.created_at else None,
        }

    async def _duplicate(
        self,
        layer: str,
        reference: str,
        requester_id: str,
        original: Optional[dict],
        request_meta: Optional[RequestMeta],
    ) -> VerificationResult:
        ecomm_duplicate_reference_total.labels(layer=layer).inc()
        ecomm_pago_movil_verifications_total.labels(outcome="duplicate").inc()
        await self.audit.log(
            AuditAction.DUPLICATE_REFERENCE_ATTEMPT,
            severity=AuditSeverity.CRITICAL,
            actor_id=requester_id,
            target_type="pago_movil_reference",
            target_id=reference,
            details={"layer": layer, **(original or {}), "new_user_id": requester_id},
            request_meta=request_meta,
        )
        return VerificationResult(
            VerificationStatus.DUPLICATE_REFERENCE,
            "This payment reference cannot be used. Please contact support.",
            code=DUPLICATE_REFERENCE_CODE,
        )

    async def verify(
        self,
        db: AsyncSession,
        *,
        payer_phone: str,
        bank_code: str,
        reference: str,
        payment_date: date,
        amount_bs: Decimal,
        requester_id: str,
        payer_id: Optional[str] = None,
        context: VerificationContext = VerificationContext.GENERAL,
        linked_transaction_id: Optional[int] = None,
        linked_order_id: Optional[int] = None,
        request_meta: Optional[RequestMeta] = None,
    ) -> VerificationResult:
        self.validate(payer_phone, bank_code, reference, payment_date, amount_bs, payer_id)
        reference = clean_reference(reference)

        original = self._claim(await DuplicateReferenceGuard.find_verified(db, reference))
        # Nothing may hold a transaction open across the bank call
        await db.rollback()
        if original is not None:
            logger.warning("duplicate_reference_precheck", referencia=reference, user_id=requester_id)
            return await self._duplicate("precheck", reference, requester_id, original, request_meta)

        bank_result: BankVerificationResult = await self.bank_client.verify_payment(
            payer_phone, bank_code, reference, payment_date, amount_bs, payer_id
        )

        attempt = PagoMovilVerificacion(
            user_id=requester_id,
            telefono_pagador=clean_phone(payer_phone),
            banco_origen=bank_code,
            referencia=reference,
            cedula_pagador=clean_national_id(payer_id) if payer_id else None,
            fecha_pago=payment_date,
            importe_solicitado=amount_bs,
            importe_verificado=bank_result.amount if bank_result.verified else None,
            codigo_respuesta=bank_result.code,
            mensaje_respuesta=(bank_result.message or "")[:500],
            verificado=bank_result.verified,
            contexto=context,
            transaction_id=linked_transaction_id if context is VerificationContext.RECHARGE else None,
            order_id=linked_order_id if context is VerificationContext.ORDER else None,
            raw_response=bank_result.raw_response,
        )
        try:
            await DuplicateReferenceGuard.record_attempt(db, attempt)
            await db.commit()
            attempt_id = attempt.id
        except IntegrityError:
            await db.rollback()
            logger.warning("duplicate_reference_constraint", referencia=reference, user_id=requester_id)
            original = self._claim(await DuplicateReferenceGuard.find_verified(db, reference))
            await db.rollback()
            return await self._duplicate("constraint", reference, requester_id, original, request_meta)

        if not bank_result.verified:
            ecomm_pago_movil_verifications_total.labels(
                outcome="bank_error" if 500 <= bank_result.code < 600 else "not_verified"
            ).inc()
            return VerificationResult(
                VerificationStatus.NOT_VERIFIED,
                describe_bank_error(bank_result.code, bank_result.message),
                code=bank_result.code,
                verification_id=attempt_id,
            )

        ecomm_pago_movil_verifications_total.labels(outcome="verified").inc()
        logger.info("pago_movil_verified", referencia=reference, user_id=requester_id,
                    verification_id=attempt_id, contexto=context.value)

        if context is VerificationContext.RECHARGE and linked_transaction_id is not None:
            verified_amount = bank_result.amount if bank_result.amount is not None else Decimal("0")
            approval = await self.ledger.auto_approve(
                db,
                linked_transaction_id,
                requester_id,
                verified_amount_bs=verified_amount,
                requested_amount_bs=amount_bs,
                verification_id=attempt_id,
                bank_code=bank_result.code,
                request_meta=request_meta,
            )
            if approval.approved:
                message = "Payment verified. Your recharge was approved automatically."
            elif approval.reason == "amount_mismatch":
                message = (
                    f"The verified amount (Bs {verified_amount}) does not match the recharge amount. "
                    "The payment will be reviewed manually."
                )
            else:
                message = "Payment verified"
            return VerificationResult(
                VerificationStatus.VERIFIED,
                message,
                code=bank_result.code,
                amount=bank_result.amount,
                auto_approved=approval.approved,
                verification_id=attempt_id,
            )

        return VerificationResult(
            VerificationStatus.VERIFIED,
            "Payment verified",
            code=bank_result.code,
            amount=bank_result.amount,
            verification_id=attempt_id,
        )


def get_payment_gateway(request: Request) -> PaymentVerificationGateway:
    return request.app.state.payments
