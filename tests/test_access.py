import unittest
from unittest.mock import Mock, patch

from app.core.settings import Settings
from app.services import access as access_service
from app.services.access import AccessDecision, AccessDecisionEngine
from app.services.admin import AdminResolver
from app.services.subscriptions import SubscriptionStore
from fake_ddb import FakeTable

ADMIN = "owner@example.com"


def build_engine(store=None, **settings):
    cfg = Settings(admin_email=settings.pop("admin_email", ADMIN), **settings)
    if store is None:
        store = Mock()
        store.has_active.return_value = False
    return AccessDecisionEngine(AdminResolver(cfg), store, cfg), store


class TestEvaluate(unittest.TestCase):
    def test_admin_short_circuits_store(self):
        engine, store = build_engine()
        decision = engine.evaluate(" Owner@Example.com ")
        self.assertTrue(decision.is_admin)
        self.assertTrue(decision.has_active_subscription)
        store.has_active.assert_not_called()

    def test_admin_granted_even_when_store_is_broken(self):
        store = Mock()
        store.has_active.side_effect = RuntimeError("unreachable")
        engine, _ = build_engine(store=store)
        self.assertTrue(engine.decide(ADMIN).entitled)
        store.has_active.assert_not_called()

    def test_subscriber_granted(self):
        engine, store = build_engine()
        store.has_active.return_value = True
        decision = engine.evaluate("reader@example.com", "sub-1")
        self.assertFalse(decision.is_admin)
        self.assertTrue(decision.entitled)
        store.has_active.assert_called_once_with("reader@example.com", "sub-1", bind=False)

    def test_bind_flag_forwarded(self):
        engine, store = build_engine()
        engine.evaluate("reader@example.com", "sub-1", bind=True)
        store.has_active.assert_called_once_with("reader@example.com", "sub-1", bind=True)

    def test_missing_identity_denied(self):
        engine, store = build_engine()
        decision = engine.evaluate(None, "  ")
        self.assertFalse(decision.entitled)
        self.assertEqual(decision.reason, "missing_identity")
        store.has_active.assert_not_called()

    def test_no_admin_configured_blank_identity_not_admin(self):
        engine, _ = build_engine(admin_email="")
        self.assertFalse(engine.evaluate("").is_admin)

    def test_store_not_configured(self):
        cfg = Settings(admin_email=ADMIN)
        engine = AccessDecisionEngine(AdminResolver(cfg), None, cfg)
        decision = engine.evaluate("reader@example.com")
        self.assertFalse(decision.ok)
        self.assertFalse(decision.entitled)
        self.assertEqual(decision.reason, "store_not_configured")

    def test_deny_by_default_for_every_inactive_status(self):
        with patch("app.services.subscriptions.audit_event"):
            for status in ("pending", "canceled", "expired", "refunded", "chargeback"):
                cfg = Settings(admin_email=ADMIN)
                store = SubscriptionStore(FakeTable(), cfg)
                store.upsert("reader@example.com", "ord-1", {"status": status})
                engine = AccessDecisionEngine(AdminResolver(cfg), store, cfg)
                self.assertFalse(engine.decide("reader@example.com").entitled, status)


class TestDecide(unittest.TestCase):
    def test_failures_collapse_to_deny(self):
        store = Mock()
        store.has_active.side_effect = RuntimeError("timeout")
        engine, _ = build_engine(store=store)
        with patch.object(access_service, "audit_event") as audit:
            decision = engine.decide("reader@example.com")
        self.assertEqual(decision, AccessDecision(ok=False, reason="check_failed"))
        self.assertFalse(decision.entitled)
        audit.assert_called_once()

    def test_status_shape(self):
        engine, store = build_engine()
        store.has_active.return_value = True
        self.assertEqual(engine.decide("reader@example.com").as_status(), {"ok": True, "isAdmin": False, "active": True})

    def test_status_shape_with_reason(self):
        engine, _ = build_engine()
        self.assertEqual(
            engine.decide("").as_status(),
            {"ok": True, "isAdmin": False, "active": False, "reason": "missing_identity"},
        )
