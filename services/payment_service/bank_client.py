"""
Banco de Venezuela (BDV) conciliation API client.

The result is opaque to callers: transport failures, bad JSON and missing
configuration all come back as a non-verified result rather than an exception.
"""
import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx
import structlog

from shared.config.settings import Settings
from shared.errors import ExternalServiceError
from shared.observability import ecomm_bank_api_duration_seconds
from .banks import (
    BDV_SUCCESS,
    TRANSPORT_ERROR_CODE,
    clean_phone,
    clean_reference,
    format_amount,
    format_date,
    format_national_id,
)

logger = structlog.get_logger(__name__)

BDV_PRODUCTION_URL = "https://bdvconciliacion.banvenez.com/getMovement"
BDV_QA_URL = "https://bdvconciliacionqa.banvenez.com:444/getMovement/v2"


@dataclass(frozen=True)
class BankVerificationResult:
    verified: bool
    code: int
    message: str
    amount: Optional[Decimal] = None
    raw_response: Optional[dict] = field(default=None, compare=False)


def _parse_amount(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class BdvClient:
    def __init__(
        self,
        api_key: str,
        merchant_phone: str,
        environment: str = "PRODUCCION",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.merchant_phone = merchant_phone
        self.url = BDV_QA_URL if environment.upper() == "CALIDAD" else BDV_PRODUCTION_URL
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "BdvClient":
        return cls(
            api_key=settings.BDV_API_KEY,
            merchant_phone=settings.BDV_TELEFONO_COMERCIO,
            environment=settings.BDV_AMBIENTE,
            timeout=settings.BDV_TIMEOUT_SECONDS,
        )

    def build_payload(
        self,
        payer_phone: str,
        bank_code: str,
        reference: str,
        payment_date: date,
        amount_bs: Decimal,
        payer_id: Optional[str] = None,
    ) -> dict:
        return {
            "cedulaPagador": format_national_id(payer_id) if payer_id else "",
            "telefonoPagador": clean_phone(payer_phone),
            "telefonoDestino": clean_phone(self.merchant_phone),
            "referencia": clean_reference(reference),
            "fechaPago": format_date(payment_date),
            "importe": format_amount(amount_bs),
            "bancoOrigen": bank_code,
            "reqCed": False,
        }

    async def _post(self, payload: dict) -> tuple[int, object]:
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                headers={"X-API-KEY": self.api_key},
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(self.url, json=payload)
                return resp.status_code, resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceError(
                "Could not reach Banco de Venezuela. Please try again.", details=str(e)
            ) from e
        finally:
            ecomm_bank_api_duration_seconds.observe(time.perf_counter() - started)

    async def verify_payment(
        self,
        payer_phone: str,
        bank_code: str,
        reference: str,
        payment_date: date,
        amount_bs: Decimal,
        payer_id: Optional[str] = None,
    ) -> BankVerificationResult:
        if not self.api_key or not self.merchant_phone:
            logger.error("bdv_not_configured", has_api_key=bool(self.api_key),
                         has_merchant_phone=bool(self.merchant_phone))
            return BankVerificationResult(False, TRANSPORT_ERROR_CODE, "Bank verification is not configured")

        payload = self.build_payload(payer_phone, bank_code, reference, payment_date, amount_bs, payer_id)
        logger.info("bdv_verify_request", url=self.url, referencia=payload["referencia"],
                    banco_origen=bank_code, importe=payload["importe"])

        try:
            status_code, data = await self._post(payload)
        except ExternalServiceError as e:
            logger.error("bdv_verify_failed", error=str(e.details), referencia=payload["referencia"])
            return BankVerificationResult(False, TRANSPORT_ERROR_CODE, e.message)

        if not isinstance(data, dict):
            return BankVerificationResult(False, status_code, "Unexpected bank response",
                                          raw_response={"body": data})

        code = data.get("code")
        try:
            code = int(code)
        except (TypeError, ValueError):
            code = status_code
        logger.info("bdv_verify_response", code=code, referencia=payload["referencia"])

        if code == BDV_SUCCESS:
            return BankVerificationResult(
                True,
                code,
                data.get("message") or "Payment verified",
                amount=_parse_amount((data.get("data") or {}).get("amount")),
                raw_response=data,
            )
        return BankVerificationResult(
            False,
            code,
            data.get("message") or "The payment could not be verified",
            raw_response=data,
        )
