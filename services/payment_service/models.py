import enum

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, Index, Integer, JSON, Numeric, String, text
from sqlalchemy.sql import func

from shared.config.database import Base


class VerificationContext(str, enum.Enum):
    RECHARGE = "RECHARGE"
    ORDER = "ORDER"
    GENERAL = "GENERAL"


class PagoMovilVerificacion(Base):
    """One row per verification attempt, successful or not."""

    __tablename__ = "pago_movil_verificaciones"
    __table_args__ = (
        # A bank reference can back at most one verified payment
        Index(
            "uq_pago_movil_referencia_verificada",
            "referencia",
            unique=True,
            postgresql_where=text("verificado = true"),
            sqlite_where=text("verificado = 1"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    telefono_pagador = Column(String(20), nullable=False)
    banco_origen = Column(String(4), nullable=False)
    referencia = Column(String(16), nullable=False, index=True)
    cedula_pagador = Column(String(12), nullable=True)
    fecha_pago = Column(Date, nullable=False)
    importe_solicitado = Column(Numeric(14, 2), nullable=False)
    importe_verificado = Column(Numeric(14, 2), nullable=True)
    codigo_respuesta = Column(Integer, nullable=True)
    mensaje_respuesta = Column(String(500), nullable=True)
    verificado = Column(Boolean, nullable=False, default=False)
    contexto = Column(Enum(VerificationContext, native_enum=False), nullable=False, default=VerificationContext.GENERAL)
    transaction_id = Column(Integer, nullable=True)
    order_id = Column(Integer, nullable=True)
    raw_response = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
