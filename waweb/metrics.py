from __future__ import annotations

from prometheus_client import Counter, Gauge


WA_SESSION_READY = Gauge(
    "waweb_session_ready", "1 while the WhatsApp Web session is ready to send"
)
WA_QR_TOTAL = Counter(
    "waweb_qr_total", "Total number of login QR codes issued by WhatsApp Web"
)
WA_QR_NOTIFY_TOTAL = Counter(
    "waweb_qr_notify_total",
    "QR email notifications grouped by outcome",
    ["result"],
)
WA_MESSAGES_SENT_TOTAL = Counter(
    "waweb_messages_sent_total", "Total number of messages handed to WhatsApp Web"
)
WA_SEND_FAILED_TOTAL = Counter(
    "waweb_send_failed_total",
    "Failed send attempts grouped by reason",
    ["reason"],
)
WA_DISCONNECTS_TOTAL = Counter(
    "waweb_disconnects_total",
    "Session disconnects grouped by reason",
    ["reason"],
)
WA_RECONNECT_TOTAL = Counter(
    "waweb_reconnect_total",
    "Reconnection attempts grouped by result",
    ["result"],
)
WA_AUTH_FAILURES_TOTAL = Counter(
    "waweb_auth_failures_total", "Total number of rejected WhatsApp Web logins"
)

__all__ = [
    "WA_SESSION_READY",
    "WA_QR_TOTAL",
    "WA_QR_NOTIFY_TOTAL",
    "WA_MESSAGES_SENT_TOTAL",
    "WA_SEND_FAILED_TOTAL",
    "WA_DISCONNECTS_TOTAL",
    "WA_RECONNECT_TOTAL",
    "WA_AUTH_FAILURES_TOTAL",
]
