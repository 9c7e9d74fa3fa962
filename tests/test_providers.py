"""Tests for provider session bookkeeping and the concrete sessions."""

import asyncio

import pytest

from app.engine.errors import ProviderError
from app.providers.base import CheckoutOptions, SessionCallbacks
from app.providers.hosted_widget import HostedWidgetSession
from app.providers.mock_provider import MockProviderSession


class Recorder:
    def __init__(self):
        self.events: list[tuple] = []

    def callbacks(self) -> SessionCallbacks:
        return SessionCallbacks(
            on_ready=lambda: self.events.append(("ready",)),
            on_completed=lambda payload: self.events.append(("completed", payload)),
            on_provider_failed=lambda code, text: self.events.append(("failed", code, text)),
            on_dismissed=lambda: self.events.append(("dismissed",)),
        )


@pytest.fixture
def options() -> CheckoutOptions:
    return CheckoutOptions(
        key="rzp_test_key",
        amount=19900,
        currency="INR",
        order_id="o1",
        name="Smart Business Bookkeeping Sheet",
        description="Product Purchase",
        prefill={"name": "Asha Rao", "email": "asha@example.com", "contact": "9876543210"},
    )


class TestWidgetOptions:
    def test_shape(self, options):
        assert options.to_widget_options() == {
            "key": "rzp_test_key",
            "amount": 19900,
            "currency": "INR",
            "name": "Smart Business Bookkeeping Sheet",
            "description": "Product Purchase",
            "order_id": "o1",
            "prefill": {"name": "Asha Rao", "email": "asha@example.com", "contact": "9876543210"},
            "theme": {"color": "#4C5FD5"},
        }


class TestSessionBookkeeping:
    def test_open_only_once(self, options):
        session = HostedWidgetSession()
        session.open(options, Recorder().callbacks())
        with pytest.raises(ProviderError):
            session.open(options, Recorder().callbacks())

    def test_cannot_reopen_after_close(self, options):
        session = HostedWidgetSession()
        session.close()
        with pytest.raises(ProviderError):
            session.open(options, Recorder().callbacks())

    def test_each_event_delivered_once(self, options):
        recorder = Recorder()
        session = HostedWidgetSession()
        session.open(options, recorder.callbacks())

        session.dispatch("ready")
        session.dispatch("ready")
        session.dispatch("dismissed")
        session.dispatch("dismissed")

        assert recorder.events == [("ready",), ("dismissed",)]

    def test_no_events_after_close(self, options):
        recorder = Recorder()
        session = HostedWidgetSession()
        session.open(options, recorder.callbacks())
        session.close()
        session.close()

        session.dispatch("completed", {"razorpay_payment_id": "pay_1"})

        assert recorder.events == []
        assert not session.is_open
        assert session.widget_options is None


class TestHostedWidgetSession:
    def test_open_publishes_options(self, options):
        session = HostedWidgetSession()
        handle = session.open(options, Recorder().callbacks())

        assert session.is_open
        assert session.widget_options["order_id"] == "o1"
        assert handle.order_id == "o1"
        assert handle.provider == "hosted_widget"

    def test_failed_event_unpacks_error(self, options):
        recorder = Recorder()
        session = HostedWidgetSession()
        session.open(options, recorder.callbacks())

        session.dispatch("failed", {"error": {"code": "BAD_REQUEST_ERROR", "description": "Card declined"}})

        assert recorder.events == [("failed", "BAD_REQUEST_ERROR", "Card declined")]

    def test_failed_event_without_code(self, options):
        recorder = Recorder()
        session = HostedWidgetSession()
        session.open(options, recorder.callbacks())

        session.dispatch("failed")

        assert recorder.events == [("failed", "PAYMENT_FAILED", "")]

    def test_failed_event_with_malformed_error(self, options):
        recorder = Recorder()
        session = HostedWidgetSession()
        session.open(options, recorder.callbacks())

        session.dispatch("failed", {"error": "Card declined"})

        assert recorder.events == [("failed", "PAYMENT_FAILED", "")]

    def test_unknown_event(self, options):
        session = HostedWidgetSession()
        session.open(options, Recorder().callbacks())
        with pytest.raises(ValueError):
            session.dispatch("refunded")


class TestMockProviderSession:
    @pytest.mark.asyncio
    async def test_script_plays_in_order(self, options):
        recorder = Recorder()
        session = MockProviderSession(
            script=[("ready",), ("failed", "GATEWAY_ERROR", "Upstream error")],
            latency_ms=0,
        )
        session.open(options, recorder.callbacks())
        await asyncio.sleep(0.01)

        assert recorder.events == [("ready",), ("failed", "GATEWAY_ERROR", "Upstream error")]
        assert not session.timer_running

    @pytest.mark.asyncio
    async def test_close_cancels_script_timer(self, options):
        recorder = Recorder()
        session = MockProviderSession(script=[("ready",), ("dismissed",)], latency_ms=60_000)
        session.open(options, recorder.callbacks())
        assert session.timer_running

        session.close()
        await asyncio.sleep(0)

        assert not session.timer_running
        assert recorder.events == []
        assert session.close_count == 1

    def test_generated_completion_payload(self, options):
        recorder = Recorder()
        session = MockProviderSession()
        session.open(options, recorder.callbacks())

        session.complete()

        (event, payload), = recorder.events
        assert event == "completed"
        assert payload["razorpay_order_id"] == "o1"
        assert payload["razorpay_payment_id"].startswith("pay_")
        assert payload["razorpay_signature"]

    def test_launch_failure(self, options):
        session = MockProviderSession(fail_on_open=True)
        with pytest.raises(ProviderError) as exc:
            session.open(options, Recorder().callbacks())
        assert exc.value.code == "SDK_LOAD_FAILED"
