"""Production-friendly ASGI entrypoint."""

from __future__ import annotations

from voucher_allocation.api.app import create_application

app = create_application()
