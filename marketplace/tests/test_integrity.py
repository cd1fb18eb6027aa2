"""
Integrity audit: GET /integrity-check/ and `manage.py integrity_check`.
"""

from __future__ import annotations

import json
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings
from django.utils import timezone

from marketplace.models import (
    AuditLogEntry,
    OrderStatus,
    PaymentEventStatus,
    ProcessedPaymentEvent,
    ProfileRole,
    PurchaseGrant,
)
from marketplace.services.integrity import normalize_secret, run_integrity_check

from .helpers import CRON_SECRET, make_deliverable, make_listing, make_order, make_paid_order, make_user

CHECK_URL = "/integrity-check/"


class IntegrityTestCase(TestCase):
    def setUp(self):
        self.seller = make_user(role=ProfileRole.VENDOR)
        self.buyer = make_user()
        self.listing = make_listing(self.seller)


class IntegrityCheckViewTests(IntegrityTestCase):
    def test_requires_secret(self):
        r = self.client.get(CHECK_URL)
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json()["error"]["code"], "unauthorized")

        r = self.client.get(CHECK_URL, HTTP_AUTHORIZATION="Bearer wrong")
        self.assertEqual(r.status_code, 401)
        self.assertFalse(AuditLogEntry.objects.filter(action="integrity_check").exists())

    def test_accepts_secret_in_each_location(self):
        for kwargs in (
            {"HTTP_AUTHORIZATION": f"Bearer {CRON_SECRET}"},
            {"HTTP_X_CRON_SECRET": CRON_SECRET},
            {"data": {"secret": CRON_SECRET}},
        ):
            with self.subTest(kwargs=list(kwargs)):
                r = self.client.get(CHECK_URL, **kwargs)
                self.assertEqual(r.status_code, 200)

    def test_paid_order_without_grant_is_reported_and_alerted(self):
        order = make_paid_order(self.buyer, self.listing)
        PurchaseGrant.objects.filter(order=order).delete()

        r = self.client.get(CHECK_URL, HTTP_AUTHORIZATION=f"Bearer {CRON_SECRET}")
        self.assertEqual(r.status_code, 200)
        data = r.json()["data"]
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["paid_orders_missing_purchases"], [str(order.pk)])
        self.assertEqual(data["counts"]["paid_orders_missing_purchases"], 1)

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Integrity check", mail.outbox[0].subject)
        self.assertEqual(mail.outbox[0].to, ["ops@seedbay.test"])
        self.assertIn(str(order.pk), mail.outbox[0].body)

        entry = AuditLogEntry.objects.get(action="integrity_check")
        self.assertEqual(entry.resource_type, "system")
        self.assertEqual(entry.new_values["counts"]["paid_orders_missing_purchases"], 1)

    def test_clean_run_sends_no_alert(self):
        make_paid_order(self.buyer, self.listing)
        r = self.client.get(CHECK_URL, HTTP_X_CRON_SECRET=CRON_SECRET)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(sum(r.json()["data"]["counts"].values()), 0)
        self.assertEqual(len(mail.outbox), 0)

    def test_failure_is_500(self):
        with mock.patch("marketplace.views.integrity.run_integrity_check", side_effect=RuntimeError("boom")):
            r = self.client.get(CHECK_URL, HTTP_X_CRON_SECRET=CRON_SECRET)
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["error"]["code"], "integrity_check_failed")

    @override_settings(CRON_SECRET="")
    def test_unconfigured_secret_rejects_everything(self):
        r = self.client.get(CHECK_URL, HTTP_X_CRON_SECRET="")
        self.assertEqual(r.status_code, 401)


class IntegrityFindingsTests(IntegrityTestCase):
    def test_grant_on_unpaid_order(self):
        order = make_order(self.buyer, self.listing, status=OrderStatus.PENDING)
        grant = PurchaseGrant.objects.create(buyer=self.buyer, listing=self.listing, order=order)
        report = run_integrity_check(alert=False)
        self.assertEqual(report.purchases_without_paid_order, [str(grant.pk)])
        self.assertFalse(report.alerted)

    def test_deliverable_on_unpaid_order(self):
        order = make_order(self.buyer, self.listing)
        delivered = make_deliverable(order)
        undelivered = make_deliverable(order, "kits/second.zip", delivered=False)
        report = run_integrity_check(alert=False)
        self.assertEqual(sorted(report.deliverables_without_paid_order), sorted([str(delivered.pk), str(undelivered.pk)]))

    def test_deliverable_on_paid_order_is_fine(self):
        make_deliverable(make_paid_order(self.buyer, self.listing))
        self.assertFalse(run_integrity_check(alert=False).has_issues)

    def test_stale_received_event(self):
        ProcessedPaymentEvent.objects.create(
            event_id="evt_stuck",
            event_type="payment_intent.succeeded",
            payload={},
            status=PaymentEventStatus.RECEIVED,
            received_at=timezone.now() - timedelta(hours=2),
        )
        ProcessedPaymentEvent.objects.create(
            event_id="evt_fresh",
            event_type="payment_intent.succeeded",
            payload={},
            status=PaymentEventStatus.RECEIVED,
        )
        report = run_integrity_check(alert=False)
        self.assertEqual(report.pending_payment_events, ["evt_stuck"])

    def test_old_orders_outside_window_are_skipped(self):
        order = make_paid_order(self.buyer, self.listing)
        PurchaseGrant.objects.filter(order=order).delete()
        type(order).objects.filter(pk=order.pk).update(created_at=timezone.now() - timedelta(days=30))
        self.assertEqual(run_integrity_check(lookback_days=7, alert=False).paid_orders_missing_purchases, [])

    @override_settings(SEEDBAY_ALERT_EMAILS=[], SEEDBAY_ALERT_WEBHOOK_URL="https://hooks.seedbay.test/alerts")
    def test_alert_webhook(self):
        order = make_paid_order(self.buyer, self.listing)
        PurchaseGrant.objects.filter(order=order).delete()
        with mock.patch("marketplace.services.alerting.requests.post") as post:
            report = run_integrity_check()
        self.assertTrue(report.alerted)
        post.assert_called_once()
        self.assertEqual(post.call_args.args[0], "https://hooks.seedbay.test/alerts")
        body = json.loads(post.call_args.kwargs["data"])
        self.assertEqual(body["payload"]["paid_orders_missing_purchases"], [str(order.pk)])
        self.assertEqual(len(mail.outbox), 0)

    def test_normalize_secret(self):
        self.assertEqual(normalize_secret('  "abc"\n'), "abc")
        self.assertEqual(normalize_secret("abc\\n"), "abc")
        self.assertEqual(normalize_secret(None), "")


class IntegrityCommandTests(IntegrityTestCase):
    def test_json_output(self):
        order = make_paid_order(self.buyer, self.listing)
        PurchaseGrant.objects.filter(order=order).delete()
        out = StringIO()
        call_command("integrity_check", "--json", "--no-alert", stdout=out)
        report = json.loads(out.getvalue())
        self.assertEqual(report["paid_orders_missing_purchases"], [str(order.pk)])
        self.assertEqual(len(mail.outbox), 0)

    def test_text_output(self):
        out = StringIO()
        call_command("integrity_check", "--lookback-days", "3", stdout=out)
        self.assertIn("No drift in the last 3 days.", out.getvalue())

    def test_rejects_bad_lookback(self):
        with self.assertRaises(CommandError):
            call_command("integrity_check", "--lookback-days", "0")
