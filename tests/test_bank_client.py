"""
BdvClient against a mocked BDV conciliation API.
"""
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from services.payment_service.bank_client import BDV_PRODUCTION_URL, BDV_QA_URL, BdvClient
from services.payment_service.banks import (
    describe_bank_error,
    format_amount,
    format_national_id,
    get_bank,
    is_valid_phone,
)


class RecordingHandler:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def make_client(handler, environment="CALIDAD", api_key="bdv-key", merchant_phone="0414-000-0000"):
    return BdvClient(api_key, merchant_phone, environment=environment, transport=httpx.MockTransport(handler))


async def verify(client):
    return await client.verify_payment(
        "0412-1234567", "0102", " 123456 ", date(2026, 10, 18), Decimal("1000"), payer_id="12345678",
    )


class TestBdvClient:

    async def test_request_payload_and_headers(self):
        handler = RecordingHandler(httpx.Response(200, json={
            "code": 1000, "message": "Transaccion realizada", "data": {"amount": "1000.00"},
        }))

        await verify(make_client(handler))

        [request] = handler.requests
        assert str(request.url) == BDV_QA_URL
        assert request.headers["X-API-KEY"] == "bdv-key"
        assert json.loads(request.content) == {
            "cedulaPagador": "V12345678",
            "telefonoPagador": "04121234567",
            "telefonoDestino": "04140000000",
            "referencia": "123456",
            "fechaPago": "2026-10-18",
            "importe": "1000.00",
            "bancoOrigen": "0102",
            "reqCed": False,
        }

    async def test_production_is_the_default_environment(self):
        handler = RecordingHandler(httpx.Response(200, json={"code": 1000, "data": {"amount": 1}}))

        await verify(make_client(handler, environment="PRODUCCION"))

        assert str(handler.requests[0].url) == BDV_PRODUCTION_URL

    async def test_success_code_carries_the_verified_amount(self):
        handler = RecordingHandler(httpx.Response(200, json={"code": "1000", "data": {"amount": 995.5}}))

        result = await verify(make_client(handler))

        assert result.verified is True
        assert result.code == 1000
        assert result.amount == Decimal("995.5")
        assert result.raw_response["code"] == "1000"

    async def test_not_found(self):
        handler = RecordingHandler(httpx.Response(200, json={
            "code": 1010, "message": "Registro solicitado no existe",
        }))

        result = await verify(make_client(handler))

        assert result.verified is False
        assert result.code == 1010
        assert result.message == "Registro solicitado no existe"
        assert result.amount is None

    async def test_missing_code_falls_back_to_http_status(self):
        handler = RecordingHandler(httpx.Response(400, json={"message": "datos mandatorios"}))

        result = await verify(make_client(handler))

        assert result.verified is False
        assert result.code == 400

    @pytest.mark.parametrize("handler", [
        RecordingHandler(error=httpx.ConnectError("connection refused")),
        RecordingHandler(error=httpx.ReadTimeout("timed out")),
        RecordingHandler(httpx.Response(502, text="<html>Bad gateway</html>")),
    ])
    async def test_transport_failures_are_not_verified(self, handler):
        result = await verify(make_client(handler))

        assert result.verified is False
        assert result.code == 500

    async def test_missing_configuration_skips_the_call(self):
        handler = RecordingHandler(httpx.Response(200, json={"code": 1000}))

        result = await verify(make_client(handler, api_key=""))

        assert result.verified is False
        assert result.code == 500
        assert handler.requests == []


class TestBankHelpers:

    def test_directory(self):
        assert get_bank("0134").short_name == "Banesco"
        assert get_bank("0000") is None

    def test_formatting(self):
        assert format_national_id("e-1234567") == "E1234567"
        assert format_national_id("12 345 678") == "V12345678"
        assert format_amount(Decimal("10.005")) == "10.01"
        assert format_amount(7) == "7.00"
        assert is_valid_phone("0424 123 4567")

    @pytest.mark.parametrize("code, message, expected", [
        (1000, "", "Payment verified"),
        (1010, "La referencia ya fue utilizada", "already used"),
        (1010, "", "Payment not found at the bank"),
        (400, "", "The submitted data is invalid"),
        (401, "", "Authentication error"),
        (503, "", "Internal bank error"),
        (1020, "Importe no coincide", "amount does not match"),
        (1099, "algo raro", "(code: 1099). algo raro"),
    ])
    def test_describe_bank_error(self, code, message, expected):
        assert expected in describe_bank_error(code, message)
