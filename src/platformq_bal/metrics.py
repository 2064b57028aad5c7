"""
Prometheus metrics for adapter operations.
"""

from prometheus_client import Counter, Histogram, Gauge

SMART_CONTRACT_INVOCATIONS_TOTAL = Counter(
    'bal_smart_contract_invocations_total',
    'Total number of smart contract invocations',
    ['blockchain_id', 'function', 'status']
)
SMART_CONTRACT_INVOCATION_DURATION_SECONDS = Histogram(
    'bal_smart_contract_invocation_duration_seconds',
    'Duration of smart contract invocations in seconds',
    ['blockchain_id', 'function']
)
ACTIVE_SUBSCRIPTIONS = Gauge(
    'bal_active_subscriptions',
    'Number of open event and transaction streams',
    ['blockchain_id']
)
OCCURRENCES_EMITTED_TOTAL = Counter(
    'bal_occurrences_emitted_total',
    'Total occurrences emitted to subscribers',
    ['blockchain_id', 'event']
)
FILTER_ERRORS_TOTAL = Counter(
    'bal_filter_errors_total',
    'Total subscriptions terminated by an invalid filter expression',
    ['blockchain_id', 'event']
)
MONETARY_TRANSACTIONS_TOTAL = Counter(
    'bal_monetary_transactions_total',
    'Total monetary transactions submitted',
    ['blockchain_id', 'status']
)
