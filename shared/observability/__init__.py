from .setup import setup_observability
from .metrics import (
    ecomm_orders_created_total,
    ecomm_checkout_total,
    ecomm_checkout_duration_seconds,
    ecomm_order_transitions_total,
    ecomm_stock_restores_total,
    ecomm_reservations_swept_total,
    ecomm_pago_movil_verifications_total,
    ecomm_duplicate_reference_total,
    ecomm_bank_api_duration_seconds,
    ecomm_auto_approvals_total,
)
