"""Tests for the drift sweep runner."""

import json
from datetime import timedelta

import sweeper
from ordering.api.dependencies import build_services
from ordering.checkout.builder import CheckoutSessionBuilder
from ordering.order.creation import CreateOrder
from payments.webhook.verification import EventVerifier
from protean import current_domain


def _services(gateway, carrier):
    return build_services(
        gateway=gateway,
        carrier=carrier,
        verifier=EventVerifier("whsec_test"),
        builder=CheckoutSessionBuilder(),
        stale_after=timedelta(hours=24),
    )


class TestSweeperRun:
    def test_single_run(self, gateway, carrier):
        current_domain.process(
            CreateOrder(
                items=json.dumps([{"product_id": "prod-001", "quantity": 1, "unit_price": 5.0}]),
                total=5.0,
            ),
            asynchronous=False,
        )

        reports = sweeper.run(services=_services(gateway, carrier))

        assert reports == [{"fixed_count": 0, "failed_count": 0, "unresolved_count": 1}]

    def test_interval_until_max_runs(self, gateway, carrier):
        sleeps = []

        reports = sweeper.run(
            interval=30,
            max_runs=3,
            services=_services(gateway, carrier),
            sleep=sleeps.append,
        )

        assert len(reports) == 3
        assert sleeps == [30, 30]


class TestBuildServices:
    def test_stale_after_from_environment(self, monkeypatch, gateway, carrier):
        monkeypatch.setenv("DRIFT_STALE_AFTER_HOURS", "6")
        services = build_services(gateway=gateway, carrier=carrier, builder=CheckoutSessionBuilder())
        assert services.sweep.stale_after == timedelta(hours=6)

    def test_engine_and_sweep_share_locks(self, gateway, carrier):
        services = _services(gateway, carrier)
        assert services.engine.locks is services.sweep.locks
        assert services.engine.shipment_trigger.locks is services.engine.locks

    def test_webhook_secret_from_environment(self, monkeypatch, gateway, carrier):
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_env")
        services = build_services(gateway=gateway, carrier=carrier, builder=CheckoutSessionBuilder())
        assert services.verifier.shared_secret == "whsec_env"
