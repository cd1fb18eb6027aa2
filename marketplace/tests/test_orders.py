"""
Order creation: POST /orders/ and the ledger underneath it.
"""

from __future__ import annotations

import json
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

import stripe
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.test import TestCase

from marketplace.errors import ConflictError
from marketplace.models import AuditLogEntry, ListingStatus, Order, OrderStatus, ProfileRole
from marketplace.services import ledger
from marketplace.services.auth import principal_for_user

from .helpers import make_listing, make_order, make_paid_order, make_user

ORDERS_URL = "/orders/"


def fake_intent(intent_id="pi_live_123"):
    return SimpleNamespace(id=intent_id, client_secret=f"{intent_id}_secret_abc", status="requires_payment_method")


class CreateOrderViewTests(TestCase):
    def setUp(self):
        cache.clear()
        self.seller = make_user("seller", role=ProfileRole.VENDOR)
        self.buyer = make_user("buyer")
        self.listing = make_listing(self.seller, price="49.00", currency="USD", title="Garden planner")
        self.client.force_login(self.buyer)

        patcher = mock.patch("stripe.PaymentIntent.create", return_value=fake_intent())
        self.stripe_create = patcher.start()
        self.addCleanup(patcher.stop)

    def _post(self, payload):
        return self.client.post(ORDERS_URL, data=json.dumps(payload), content_type="application/json")

    def test_creates_pending_order_and_returns_client_secret(self):
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 201)
        body = r.json()
        self.assertTrue(body["ok"])
        self.assertIn("ver", body)

        data = body["data"]
        order = Order.objects.get(pk=data["order_id"])
        self.assertEqual(data["listing_id"], str(self.listing.pk))
        self.assertEqual(data["listing_title"], "Garden planner")
        self.assertEqual(data["amount"], "49.00")
        self.assertEqual(data["currency"], "USD")
        self.assertEqual(data["client_secret"], "pi_live_123_secret_abc")
        self.assertNotIn("payment_intent", data)

        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment_intent_id, "pi_live_123")
        self.assertEqual(order.amount, Decimal("49.00"))
        self.assertEqual(order.seller_id, self.seller.pk)

    def test_intent_is_created_with_minor_units_and_order_idempotency_key(self):
        r = self._post({"listing_id": str(self.listing.pk)})
        order_id = r.json()["data"]["order_id"]

        kwargs = self.stripe_create.call_args.kwargs
        self.assertEqual(kwargs["amount"], 4900)
        self.assertEqual(kwargs["currency"], "usd")
        self.assertEqual(kwargs["idempotency_key"], f"order-{order_id}")
        self.assertIn("Garden planner", kwargs["description"])
        self.assertEqual(
            kwargs["metadata"],
            {"order_id": order_id, "listing_id": str(self.listing.pk), "buyer_id": str(self.buyer.pk)},
        )

    def test_success_writes_audit_entry_with_request_context(self):
        r = self._post({"listing_id": str(self.listing.pk)})
        entry = AuditLogEntry.objects.get(action="create_order")
        self.assertEqual(entry.resource_id, r.json()["data"]["order_id"])
        self.assertEqual(entry.actor_id, self.buyer.pk)
        self.assertEqual(entry.ip_address, "127.0.0.1")

    def test_rate_limit_headers_on_success(self):
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r["X-RateLimit-Limit"], "10")
        self.assertEqual(r["X-RateLimit-Remaining"], "9")

    def test_unauthenticated_is_401(self):
        self.client.logout()
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json()["error"]["code"], "not_authenticated")
        self.assertFalse(Order.objects.exists())

    def test_unverified_email_is_403(self):
        unverified = make_user("unverified", verified=False)
        self.client.force_login(unverified)
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["error"]["code"], "email_not_verified")

    def test_unpublished_listing_is_404(self):
        draft = make_listing(self.seller, status=ListingStatus.DRAFT)
        r = self._post({"listing_id": str(draft.pk)})
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"]["code"], "listing_unavailable")

    def test_self_purchase_is_403(self):
        self.client.force_login(self.seller)
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["error"]["code"], "self_purchase")

    def test_already_purchased_is_409(self):
        make_paid_order(self.buyer, self.listing)
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error"]["code"], "already_purchased")

    def test_second_order_while_pending_is_409_and_creates_no_row(self):
        first = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(first.status_code, 201)

        second = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()["error"]["code"], "order_in_progress")
        self.assertEqual(Order.objects.filter(buyer=self.buyer, listing=self.listing).count(), 1)
        self.assertEqual(self.stripe_create.call_count, 1)

    def test_zero_price_is_400(self):
        free = make_listing(self.seller, price="0.00")
        r = self._post({"listing_id": str(free.pk)})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "invalid_price")

    def test_invalid_body_is_400(self):
        r = self._post({"listing_id": "not-a-uuid"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "invalid_request")

        r = self.client.post(ORDERS_URL, data="[1, 2]", content_type="application/json")
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"]["code"], "invalid_json")

    def test_stripe_failure_rolls_back_order_and_hides_detail(self):
        self.stripe_create.side_effect = stripe.APIConnectionError("connect timeout to api.stripe.com")
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 500)
        body = r.json()
        self.assertEqual(body["error"]["code"], "payment_intent_failed")
        self.assertNotIn("stripe.com", body["error"]["message"])
        self.assertFalse(Order.objects.exists())

    def test_attach_failure_cancels_intent_and_deletes_order(self):
        with mock.patch("marketplace.services.ledger.attach_payment_intent", return_value=False), mock.patch(
            "stripe.PaymentIntent.cancel"
        ) as cancel:
            r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 500)
        cancel.assert_called_once()
        self.assertEqual(cancel.call_args.args[0], "pi_live_123")
        self.assertFalse(Order.objects.exists())

    def test_failed_order_does_not_block_a_new_one(self):
        make_order(self.buyer, self.listing, status=OrderStatus.FAILED)
        r = self._post({"listing_id": str(self.listing.pk)})
        self.assertEqual(r.status_code, 201)
        self.assertEqual(Order.objects.filter(buyer=self.buyer, listing=self.listing).count(), 2)


class OrderLedgerTests(TestCase):
    def setUp(self):
        self.seller = make_user(role=ProfileRole.VENDOR)
        self.buyer = make_user()
        self.listing = make_listing(self.seller)
        self.principal = principal_for_user(self.buyer)

    def test_constraint_rejects_second_in_flight_order(self):
        make_order(self.buyer, self.listing, status=OrderStatus.PENDING)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                make_order(self.buyer, self.listing, status=OrderStatus.PAID)

    def test_constraint_path_becomes_conflict_when_prechecks_are_bypassed(self):
        make_order(self.buyer, self.listing, status=OrderStatus.PENDING)
        # Simulates the race: both requests passed the pre-checks before either inserted.
        with mock.patch("django.db.models.query.QuerySet.exists", return_value=False):
            with self.assertRaises(ConflictError) as ctx:
                ledger.create_order(self.principal, self.listing.pk)
        self.assertEqual(ctx.exception.code, "order_in_progress")
        self.assertEqual(ctx.exception.http_status, 409)
        self.assertEqual(Order.objects.filter(buyer=self.buyer, listing=self.listing).count(), 1)

    def test_amount_is_quantized_to_minor_units(self):
        listing = make_listing(self.seller, price="49.005", currency="USD")
        order = ledger.create_order(self.principal, listing.pk)
        self.assertEqual(order.amount, Decimal("49.01"))

        yen = make_listing(self.seller, price="500.4", currency="jpy")
        order = ledger.create_order(self.principal, yen.pk)
        self.assertEqual(order.amount, Decimal("500"))
        self.assertEqual(order.currency, "JPY")

    def test_placeholder_intent_id_is_unique(self):
        order = ledger.create_order(self.principal, self.listing.pk)
        self.assertTrue(order.has_placeholder_intent)
        other = make_listing(self.seller)
        second = ledger.create_order(self.principal, other.pk)
        self.assertNotEqual(order.payment_intent_id, second.payment_intent_id)

    def test_compare_and_swap_transition(self):
        order = make_order(self.buyer, self.listing)
        paid = ledger.update_order_status(order.pk, OrderStatus.PENDING, OrderStatus.PAID, charge_id="ch_1")
        self.assertEqual(paid.status, OrderStatus.PAID)
        self.assertEqual(paid.charge_id, "ch_1")

        # second writer loses silently
        self.assertIsNone(ledger.update_order_status(order.pk, OrderStatus.PENDING, OrderStatus.FAILED))
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PAID)

    def test_illegal_transition_raises(self):
        order = make_order(self.buyer, self.listing, status=OrderStatus.FAILED)
        with self.assertRaises(ValueError):
            ledger.update_order_status(order.pk, OrderStatus.FAILED, OrderStatus.PAID)
        with self.assertRaises(ValueError):
            ledger.update_order_status(order.pk, OrderStatus.PAID, OrderStatus.PENDING)

    def test_status_update_cannot_touch_amount(self):
        order = make_order(self.buyer, self.listing)
        with self.assertRaises(ValueError):
            ledger.update_order_status(order.pk, OrderStatus.PENDING, OrderStatus.PAID, amount=Decimal("1.00"))

    def test_amount_is_immutable_on_save(self):
        order = Order.objects.get(pk=make_order(self.buyer, self.listing).pk)
        order.amount = Decimal("1.00")
        with self.assertRaises(ValueError):
            order.save()

    def test_discard_only_removes_pending_orders(self):
        pending = make_order(self.buyer, self.listing)
        self.assertTrue(ledger.discard_pending_order(pending))
        paid = make_paid_order(self.buyer, self.listing)
        self.assertFalse(ledger.discard_pending_order(paid))
        self.assertTrue(Order.objects.filter(pk=paid.pk).exists())

    def test_finders(self):
        order = make_order(self.buyer, self.listing, payment_intent_id="pi_find", charge_id="ch_find")
        self.assertEqual(ledger.find_order_for_event(str(order.pk)), order)
        self.assertIsNone(ledger.find_order_for_event("not-a-uuid"))
        self.assertEqual(ledger.find_order_by_intent("pi_find"), order)
        self.assertEqual(ledger.find_order_by_charge("ch_find"), order)
        self.assertIsNone(ledger.find_order_by_charge(""))
