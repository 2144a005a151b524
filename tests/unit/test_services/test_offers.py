"""Tests for the offer lifecycle coordinator."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from src.models.identity import Role
from src.models.offer import OfferStatus
from src.models.property import Property
from src.services.offers import OfferCoordinator, format_buying_date, parse_amount
from src.services.session_store import BACKEND_TOKEN_KEY
from src.utils.errors import (
    ConfigurationError,
    DuplicateOfferError,
    NotFoundError,
    OfferStateError,
    PaymentError,
    RoleError,
    ValidationError,
)
from tests.utils.assertions import assert_json_body
from tests.utils.factories import create_identity, create_offer_data, create_property_data
from tests.utils.fakes import FakePaymentProcessor
from tests.utils.helpers import create_api_client, identity_from_user

BUYING_DATE = date(2026, 12, 1)


def _coordinator(backend, user, processor=None) -> OfferCoordinator:
    identity = identity_from_user(user)
    return OfferCoordinator(create_api_client(backend, user), lambda: identity, processor)


@pytest.mark.unit
@pytest.mark.parametrize("value,expected", [
    (150000, 150000.0),
    ("150000", 150000.0),
    (150000.5, 150000.5),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


@pytest.mark.unit
@pytest.mark.parametrize("value", [None, "", "abc", True, float("nan"), float("inf")])
def test_parse_amount_rejects_garbage(value):
    with pytest.raises(ValidationError):
        parse_amount(value)


@pytest.mark.unit
def test_format_buying_date():
    assert format_buying_date(date(2026, 12, 1)) == "2026-12-01T00:00:00Z"
    assert format_buying_date(datetime(2026, 12, 1, 9, 30)) == "2026-12-01T09:30:00Z"
    eastern = timezone(timedelta(hours=-5))
    assert format_buying_date(datetime(2026, 12, 1, 9, 30, tzinfo=eastern)) == "2026-12-01T14:30:00Z"


# Creating offers

@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_offer_submits_pending_offer(backend, buyer_user, listing_data):
    coordinator = _coordinator(backend, buyer_user)
    listing = Property.model_validate(listing_data)
    buyer = identity_from_user(buyer_user)

    offer = await coordinator.create_offer(listing, 150000, BUYING_DATE, buyer)

    assert offer.status == OfferStatus.PENDING
    assert offer.property_id == listing.id
    assert offer.offered_amount == 150000
    assert coordinator.active_offer_for(listing.id) == offer
    assert_json_body(backend.calls("POST", "/offers")[0], {
        "propertyId": listing.id,
        "propertyTitle": listing.title,
        "agentEmail": listing.agent_email,
        "buyerEmail": buyer.email,
        "buyerName": buyer.display_name,
        "offeredAmount": 150000.0,
        "buyingDate": "2026-12-01T00:00:00Z",
        "status": "pending",
    })


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [99999, 300001])
async def test_create_offer_out_of_bounds_makes_no_request(backend, buyer_user, listing_data, amount):
    """Test that amounts outside the price range are rejected before any network call."""
    coordinator = _coordinator(backend, buyer_user)

    with pytest.raises(ValidationError, match=r"\$100,000 and \$300,000"):
        await coordinator.create_offer(
            Property.model_validate(listing_data), amount, BUYING_DATE, identity_from_user(buyer_user)
        )

    assert backend.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_offer_boundary_amounts_accepted(backend, buyer_user, listing_data):
    coordinator = _coordinator(backend, buyer_user)
    offer = await coordinator.create_offer(
        Property.model_validate(listing_data), 300000, BUYING_DATE, identity_from_user(buyer_user)
    )
    assert offer.offered_amount == 300000


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("role", [Role.AGENT, Role.ADMIN])
async def test_create_offer_rejects_non_buyers(backend, listing_data, role):
    user = backend.add_user(role=role.value)
    coordinator = _coordinator(backend, user)

    with pytest.raises(RoleError, match="Only regular users can purchase properties"):
        await coordinator.create_offer(
            Property.model_validate(listing_data), 150000, BUYING_DATE, identity_from_user(user)
        )
    assert backend.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_offer_requires_signed_in_buyer(backend, buyer_user, listing_data):
    coordinator = _coordinator(backend, buyer_user)
    with pytest.raises(RoleError):
        await coordinator.create_offer(Property.model_validate(listing_data), 150000, BUYING_DATE, None)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_offer_requires_buying_date(backend, buyer_user, listing_data):
    coordinator = _coordinator(backend, buyer_user)
    with pytest.raises(ValidationError, match="buying date"):
        await coordinator.create_offer(
            Property.model_validate(listing_data), 150000, None, identity_from_user(buyer_user)
        )
    assert backend.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_offer_requires_verified_listing(backend, buyer_user, agent_user):
    listing = backend.add_property(create_property_data(agent_email=agent_user["email"], verification_status="pending"))
    coordinator = _coordinator(backend, buyer_user)

    with pytest.raises(ValidationError, match="verified"):
        await coordinator.create_offer(
            Property.model_validate(listing), 150000, BUYING_DATE, identity_from_user(buyer_user)
        )
    assert backend.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_second_offer_is_blocked_by_cache(backend, buyer_user, listing_data):
    """Test that an active offer, confirmed by a refetch, blocks a new one before it is submitted."""
    coordinator = _coordinator(backend, buyer_user)
    listing = Property.model_validate(listing_data)
    buyer = identity_from_user(buyer_user)
    await coordinator.create_offer(listing, 150000, BUYING_DATE, buyer)

    with pytest.raises(DuplicateOfferError, match="pending offer"):
        await coordinator.create_offer(listing, 160000, BUYING_DATE, buyer)

    assert len(backend.calls("POST", "/offers")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_backend_duplicate_conflict_maps_to_duplicate_error(backend, buyer_user, listing_data):
    """Test the 409 DUPLICATE_OFFER path when the cache has not seen the existing offer."""
    backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"], status="accepted"))
    coordinator = _coordinator(backend, buyer_user)

    with pytest.raises(DuplicateOfferError, match="already have an active offer"):
        await coordinator.create_offer(
            Property.model_validate(listing_data), 150000, BUYING_DATE, identity_from_user(buyer_user)
        )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rejected_offer_does_not_block_new_offer(backend, buyer_user, listing_data):
    backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"], status="rejected"))
    coordinator = _coordinator(backend, buyer_user)
    await coordinator.my_offers()

    offer = await coordinator.create_offer(
        Property.model_validate(listing_data), 200000, BUYING_DATE, identity_from_user(buyer_user)
    )
    assert offer.status == OfferStatus.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cached_offer_rejected_by_agent_does_not_block_new_offer(backend, buyer_user, listing_data):
    """Test that a stale pending offer in the cache is refetched before refusing."""
    coordinator = _coordinator(backend, buyer_user)
    listing = Property.model_validate(listing_data)
    buyer = identity_from_user(buyer_user)
    first = await coordinator.create_offer(listing, 150000, BUYING_DATE, buyer)
    backend.offers[first.id]["status"] = "rejected"

    second = await coordinator.create_offer(listing, 180000, BUYING_DATE, buyer)

    assert second.id != first.id
    assert second.status == OfferStatus.PENDING
    assert len(backend.calls("POST", "/offers")) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cached_offers_are_dropped_when_signed_in_user_changes(backend, buyer_user, listing_data):
    """Test that a second buyer on the same client is not judged by the first buyer's offers."""
    alice = identity_from_user(buyer_user)
    bob_user = backend.add_user(role="user")
    bob = identity_from_user(bob_user)
    current = {"identity": alice}
    api = create_api_client(backend, buyer_user)
    coordinator = OfferCoordinator(api, lambda: current["identity"])
    listing = Property.model_validate(listing_data)
    alice_offer = await coordinator.create_offer(listing, 150000, BUYING_DATE, alice)

    current["identity"] = None
    assert coordinator.cached(alice_offer.id) is None
    current["identity"] = bob
    api.store.set(BACKEND_TOKEN_KEY, backend.backend_token_for(bob_user))

    assert coordinator.active_offer_for(listing.id) is None
    bob_offer = await coordinator.create_offer(listing, 160000, BUYING_DATE, bob)

    assert bob_offer.buyer_email == bob.email
    with pytest.raises(NotFoundError):
        await coordinator.cancel_offer(alice_offer.id)
    assert backend.offers[alice_offer.id]["status"] == "pending"


# Cancelling

@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_pending_offer(backend, buyer_user, listing_data):
    offer = backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"]))
    coordinator = _coordinator(backend, buyer_user)

    await coordinator.cancel_offer(offer["_id"])

    assert len(backend.calls("DELETE", f"/offers/{offer['_id']}")) == 1
    assert coordinator.cached(offer["_id"]) is None
    assert await coordinator.my_offers() == []


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["accepted", "rejected", "bought"])
async def test_cancel_non_pending_offer_is_refused_locally(backend, buyer_user, listing_data, status):
    """Test that only pending offers reach the DELETE endpoint."""
    offer = backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"], status=status))
    coordinator = _coordinator(backend, buyer_user)

    with pytest.raises(OfferStateError):
        await coordinator.cancel_offer(offer["_id"])

    assert backend.calls("DELETE", f"/offers/{offer['_id']}") == []
    assert offer["_id"] in backend.offers


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_unknown_offer(backend, buyer_user):
    coordinator = _coordinator(backend, buyer_user)
    with pytest.raises(NotFoundError):
        await coordinator.cancel_offer("0" * 24)


# Agent responses

@pytest.mark.unit
@pytest.mark.asyncio
async def test_accept_rejects_sibling_offers(backend, agent_user, listing_data):
    """Test that accepting one offer surfaces the backend's rejection of the others."""
    chosen = backend.add_offer(create_offer_data(listing_data))
    sibling = backend.add_offer(create_offer_data(listing_data))
    coordinator = _coordinator(backend, agent_user)
    await coordinator.requested_offers()

    accepted = await coordinator.accept_offer(chosen["_id"])

    assert accepted.status == OfferStatus.ACCEPTED
    assert coordinator.cached(sibling["_id"]).status == OfferStatus.REJECTED
    assert_json_body(backend.calls("PATCH", f"/offers/agent/accept/{chosen['_id']}")[0], {"action": "accept"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reject_offer(backend, agent_user, listing_data):
    offer = backend.add_offer(create_offer_data(listing_data))
    coordinator = _coordinator(backend, agent_user)

    rejected = await coordinator.reject_offer(offer["_id"])

    assert rejected.status == OfferStatus.REJECTED
    assert json.loads(backend.calls("PATCH", f"/offers/agent/reject/{offer['_id']}")[0].content) == {
        "action": "reject"
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_accept_requires_agent(backend, buyer_user, listing_data):
    offer = backend.add_offer(create_offer_data(listing_data))
    coordinator = _coordinator(backend, buyer_user)

    with pytest.raises(RoleError):
        await coordinator.accept_offer(offer["_id"])
    assert backend.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_responding_to_decided_offer_is_refused(backend, agent_user, listing_data):
    offer = backend.add_offer(create_offer_data(listing_data, status="accepted"))
    coordinator = _coordinator(backend, agent_user)
    await coordinator.requested_offers()

    with pytest.raises(OfferStateError):
        await coordinator.reject_offer(offer["_id"])
    assert backend.calls("PATCH", f"/offers/agent/reject/{offer['_id']}") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sold_offers_and_total(backend, agent_user, listing_data):
    backend.add_offer(create_offer_data(listing_data, status="bought", offeredAmount=200000))
    backend.add_offer(create_offer_data(listing_data, status="bought", offeredAmount=250000))
    backend.add_offer(create_offer_data(listing_data, status="pending", offeredAmount=120000))
    coordinator = _coordinator(backend, agent_user)

    sold = await coordinator.sold_offers()

    assert {offer.status for offer in sold} == {OfferStatus.BOUGHT}
    assert await coordinator.total_sold_amount() == 450000


# Payment

@pytest.mark.unit
@pytest.mark.asyncio
async def test_pay_accepted_offer(backend, buyer_user, listing_data):
    offer = backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"], status="accepted"))
    processor = FakePaymentProcessor()
    coordinator = _coordinator(backend, buyer_user, processor)

    paid = await coordinator.pay_offer(offer["_id"], "pm_card_visa")

    assert paid.status == OfferStatus.BOUGHT
    intent, method = processor.confirmed[0]
    assert method == "pm_card_visa"
    assert paid.transaction_id == intent.intent_id
    assert_json_body(backend.calls("POST", "/payment/create-payment-intent")[0], {
        "amount": offer["offeredAmount"],
        "offerId": offer["_id"],
    })
    assert_json_body(backend.calls("POST", "/payment/confirm-payment")[0], {
        "paymentIntentId": intent.intent_id,
        "offerId": offer["_id"],
    })


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pay_processor_failure_leaves_offer_accepted(backend, buyer_user, listing_data):
    """Test that a declined card never reaches confirm-payment."""
    offer = backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"], status="accepted"))
    coordinator = _coordinator(backend, buyer_user, FakePaymentProcessor(error="Your card was declined."))

    with pytest.raises(PaymentError, match="Your card was declined."):
        await coordinator.pay_offer(offer["_id"], "pm_card_chargeDeclined")

    assert backend.calls("POST", "/payment/confirm-payment") == []
    assert backend.offers[offer["_id"]]["status"] == "accepted"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pay_unconfirmed_status_is_an_error(backend, buyer_user, listing_data):
    offer = backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"], status="accepted"))
    coordinator = _coordinator(backend, buyer_user, FakePaymentProcessor(status="requires_action"))

    with pytest.raises(PaymentError, match="could not be confirmed"):
        await coordinator.pay_offer(offer["_id"], "pm_card_visa")
    assert backend.calls("POST", "/payment/confirm-payment") == []


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["pending", "rejected", "bought"])
async def test_pay_requires_accepted_offer(backend, buyer_user, listing_data, status):
    offer = backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"], status=status))
    coordinator = _coordinator(backend, buyer_user, FakePaymentProcessor())

    with pytest.raises(OfferStateError):
        await coordinator.pay_offer(offer["_id"], "pm_card_visa")
    assert backend.calls("POST", "/payment/create-payment-intent") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pay_sees_acceptance_made_after_cache_fill(backend, buyer_user, listing_data):
    """Test that a cached pending offer is refetched before payment is refused."""
    offer = backend.add_offer(create_offer_data(listing_data, buyer_email=buyer_user["email"]))
    coordinator = _coordinator(backend, buyer_user, FakePaymentProcessor())
    await coordinator.my_offers()
    backend.offers[offer["_id"]]["status"] = "accepted"

    paid = await coordinator.pay_offer(offer["_id"], "pm_card_visa")
    assert paid.status == OfferStatus.BOUGHT


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pay_without_processor(backend, buyer_user):
    coordinator = _coordinator(backend, buyer_user)
    with pytest.raises(ConfigurationError):
        await coordinator.pay_offer("0" * 24, "pm_card_visa")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pay_rejects_agents(backend, agent_user):
    coordinator = OfferCoordinator(
        create_api_client(backend, agent_user),
        lambda: create_identity(role=Role.AGENT),
        FakePaymentProcessor()
    )
    with pytest.raises(RoleError):
        await coordinator.pay_offer("0" * 24, "pm_card_visa")
