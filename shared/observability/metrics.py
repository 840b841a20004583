from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_orders_created_total = Counter(
    "ecomm_orders_created_total",
    "Total orders created",
    ["payment_method"] # Labels: 'WALLET', 'PAGO_MOVIL', ...
)

ecomm_checkout_total = Counter(
    "ecomm_checkout_total",
    "Total checkouts processed",
    ["status"] # Labels: 'success', 'rejected', 'failed'
)

ecomm_checkout_duration_seconds = Histogram(
    "ecomm_checkout_duration_seconds",
    "Checkout duration in seconds"
)

ecomm_order_transitions_total = Counter(
    "ecomm_order_transitions_total",
    "Order status transitions applied",
    ["to_status"]
)

ecomm_stock_restores_total = Counter(
    "ecomm_stock_restores_total",
    "Cancellations that restored committed stock"
)

ecomm_reservations_swept_total = Counter(
    "ecomm_reservations_swept_total",
    "Expired stock reservations deleted by the sweeper"
)

ecomm_pago_movil_verifications_total = Counter(
    "ecomm_pago_movil_verifications_total",
    "Pago Movil verification attempts",
    ["outcome"] # Labels: 'verified', 'not_verified', 'duplicate', 'bank_error'
)

ecomm_duplicate_reference_total = Counter(
    "ecomm_duplicate_reference_total",
    "Replayed bank references blocked",
    ["layer"] # Labels: 'precheck', 'constraint'
)

ecomm_bank_api_duration_seconds = Histogram(
    "ecomm_bank_api_duration_seconds",
    "BDV verification API latency in seconds"
)

ecomm_auto_approvals_total = Counter(
    "ecomm_auto_approvals_total",
    "Recharge auto-approval decisions",
    ["outcome"] # Labels: 'approved', 'amount_mismatch', 'already_processed', 'idor'
)
