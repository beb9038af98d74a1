from prometheus_client import Counter, start_http_server

player_chunks_delivered_total = Counter(
    "player_chunks_delivered_total",
    "Chunks received and appended to the sink",
)

player_bytes_delivered_total = Counter(
    "player_bytes_delivered_total",
    "Bytes received and appended to the sink",
)

player_paid_atomic_total = Counter(
    "player_paid_atomic_total",
    "Amount paid for delivered chunks, in atomic units of the payment asset",
)

player_retries_total = Counter(
    "player_retries_total",
    "Retried chunk or metadata requests",
    labelnames=["reason"],
)


def setup_metrics_server(port: int) -> None:
    start_http_server(port)
