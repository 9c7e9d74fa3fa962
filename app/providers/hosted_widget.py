"""
Server-side half of a browser-hosted checkout widget.

The widget itself runs in the buyer's browser. open() only publishes the
widget options so the presentation layer can launch it; the browser then
forwards each widget callback to the checkout API, which hands it to
dispatch(). Event payloads use the widget's own shapes:

  completed  {razorpay_payment_id, razorpay_order_id, razorpay_signature}
  failed     {error: {code, description}}
  ready, dismissed  (no data)
"""

from typing import Any, Optional

from app.models.enums import FailureCode
from app.providers.base import CheckoutOptions, PaymentProviderSession

EVENTS = ("ready", "completed", "failed", "dismissed")


class HostedWidgetSession(PaymentProviderSession):
    def __init__(self) -> None:
        super().__init__()
        self.widget_options: Optional[dict[str, Any]] = None

    @property
    def name(self) -> str:
        return "hosted_widget"

    def _launch(self, options: CheckoutOptions) -> None:
        self.widget_options = options.to_widget_options()

    def _teardown(self) -> None:
        self.widget_options = None

    def dispatch(self, event: str, data: Optional[dict[str, Any]] = None) -> None:
        """Deliver a browser-forwarded widget event."""
        data = data or {}
        if event == "ready":
            self._emit_ready()
        elif event == "completed":
            self._emit_completed(data)
        elif event == "failed":
            error = data.get("error")
            if not isinstance(error, dict):
                error = {}
            self._emit_failed(
                str(error.get("code") or FailureCode.PAYMENT_FAILED.value),
                str(error.get("description") or ""),
            )
        elif event == "dismissed":
            self._emit_dismissed()
        else:
            raise ValueError(f"Unknown widget event: {event}")
