"""
Venezuelan bank directory plus the input validators and formatters used for
Pago Movil verification requests.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

BDV_SUCCESS = 1000
BDV_NOT_FOUND = 1010
BDV_BAD_REQUEST = 400
TRANSPORT_ERROR_CODE = 500

_PHONE_RE = re.compile(r"^04\d{9}$")
_ID_RE = re.compile(r"^[VE]?\d{6,9}$")
_REFERENCE_RE = re.compile(r"^\d{4,8}$")
_SEPARATORS_RE = re.compile(r"[-\s]")


@dataclass(frozen=True)
class Bank:
    code: str
    name: str
    short_name: str


VENEZUELAN_BANKS = (
    Bank("0102", "Banco de Venezuela", "Venezuela"),
    Bank("0104", "Venezolano de Crédito", "Venezolano de Crédito"),
    Bank("0105", "Mercantil", "Mercantil"),
    Bank("0108", "Provincial", "Provincial"),
    Bank("0114", "Bancaribe", "Bancaribe"),
    Bank("0115", "Exterior", "Exterior"),
    Bank("0128", "Caroní", "Caroní"),
    Bank("0134", "Banesco", "Banesco"),
    Bank("0137", "Sofitasa", "Sofitasa"),
    Bank("0138", "Banco Plaza", "Plaza"),
    Bank("0146", "Banco de la Gente Emprendedora", "Bangente"),
    Bank("0151", "Fondo Común", "Fondo Común"),
    Bank("0156", "100% Banco", "100% Banco"),
    Bank("0157", "Delsur", "Delsur"),
    Bank("0163", "Del Tesoro", "Tesoro"),
    Bank("0166", "Agrícola de Venezuela", "Agrícola"),
    Bank("0168", "Bancrecer", "Bancrecer"),
    Bank("0169", "Mi Banco", "Mi Banco"),
    Bank("0171", "Activo", "Activo"),
    Bank("0172", "Bancamiga", "Bancamiga"),
    Bank("0173", "Internacional de Desarrollo", "BID"),
    Bank("0174", "Banplus", "Banplus"),
    Bank("0175", "Bicentenario", "Bicentenario"),
    Bank("0177", "BANFANB", "BANFANB"),
    Bank("0191", "BNC", "BNC"),
)

_BANKS_BY_CODE = {bank.code: bank for bank in VENEZUELAN_BANKS}


def get_bank(code: str) -> Optional[Bank]:
    return _BANKS_BY_CODE.get(code)


def clean_phone(phone: str) -> str:
    return _SEPARATORS_RE.sub("", phone)


def is_valid_phone(phone: str) -> bool:
    """04XX-XXXXXXX or 04XXXXXXXXX."""
    return bool(_PHONE_RE.match(clean_phone(phone)))


def clean_national_id(national_id: str) -> str:
    return _SEPARATORS_RE.sub("", national_id.upper())


def is_valid_national_id(national_id: str) -> bool:
    return bool(_ID_RE.match(clean_national_id(national_id)))


def format_national_id(national_id: str) -> str:
    """Bank format: always prefixed with V or E."""
    cleaned = clean_national_id(national_id)
    if cleaned[:1].isdigit():
        return "V" + cleaned
    return cleaned


def clean_reference(reference: str) -> str:
    return re.sub(r"\s", "", reference)


def is_valid_reference(reference: str) -> bool:
    return bool(_REFERENCE_RE.match(clean_reference(reference)))


def format_date(value: Union[date, datetime, str]) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def format_amount(amount: Union[Decimal, float, int]) -> str:
    return str(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# (substrings, human-readable interpretation), checked in order
_MESSAGE_RULES = (
    (("ya fue utilizada", "duplicada", "usada anteriormente"),
     "This payment reference was already used. The same reference cannot back several transactions."),
    (("registro solicitado no existe", "no encontrado", "not found"),
     "The payment was not found. Check the reference, date, amount and source phone."),
    (("datos mandatorios", "null", "required"),
     "Required data is missing. Please complete every field."),
    (("cliente no afiliado", "no afiliado al producto", "comercio no registrado"),
     "Merchant configuration error. Please contact support."),
    (("cedula", "cédula", "identificacion", "ci invalid"),
     "The national ID does not match the account holder."),
    (("transacción realizada", "transaccion realizada"),
     "The transaction exists but does not match the data provided. Check amount, reference and date."),
    (("importe no coincide", "monto", "amount"),
     "The payment amount does not match. Transfer exactly the amount shown."),
    (("fecha", "date"),
     "The payment date does not match the day the payment was made."),
    (("referencia", "reference"),
     "The payment reference was not found. Check the number on your receipt."),
    (("teléfono", "telefono", "phone"),
     "The phone number does not match the one the payment was sent from."),
    (("banco", "bank", "entidad"),
     "The source bank does not match the bank the payment was sent from."),
    (("timeout", "tiempo de espera", "connection"),
     "Connection error with the bank. Wait a few seconds and try again."),
    (("servicio no disponible", "service unavailable", "maintenance"),
     "The bank verification service is unavailable right now. Try again later."),
)


def describe_bank_error(code: int, message: str) -> str:
    """Turns a BDV response code/message into something a customer can act on."""
    if code == BDV_SUCCESS:
        return "Payment verified"

    lowered = (message or "").lower()
    for needles, description in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return description

    if code == BDV_BAD_REQUEST:
        return "The submitted data is invalid. Check every field."
    if code == BDV_NOT_FOUND:
        return (
            "Payment not found at the bank. The data may be wrong, the bank may not have "
            "processed it yet, or it is older than 30 days."
        )
    if code in (401, 403):
        return "Authentication error with the bank. Please contact support."
    if 500 <= code < 600:
        return "Internal bank error. Try again in a few minutes."
    return f"The payment could not be verified (code: {code}). {message or 'Check the data and try again.'}"
