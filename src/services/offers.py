"""
Offer lifecycle coordinator.

    pending  -> accepted   agent action; the backend rejects sibling pending offers
    pending  -> rejected   agent action
    pending  -> (deleted)  buyer cancellation
    accepted -> bought     confirmed payment

The backend is the authority for every transition. This coordinator runs the same
guards before calling it and keeps a read-after-write cache of offers that is
refetched after each mutation, so backend side effects are observed, never computed.
"""

import math
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Optional, Union

from src.models.identity import Identity, Role
from src.models.offer import Offer, OfferStatus, SoldTotal, can_transition
from src.models.payment import PaymentIntent
from src.models.property import Property
from src.services.access import require_role
from src.services.api_client import ApiClient
from src.services.payments import PaymentProcessor
from src.utils.errors import (
    ApiError,
    ConfigurationError,
    DuplicateOfferError,
    NotFoundError,
    OfferStateError,
    PaymentError,
    ValidationError,
)
from src.utils.logging import get_structured_logger, log_timing, mask_email

logger = get_structured_logger(__name__)

BUYERS_ONLY = "Only regular users can purchase properties. Agents and admins cannot buy properties."
AGENTS_ONLY = "Only agents can respond to offers."


def _offers(data: Any) -> list[Offer]:
    return [Offer.model_validate(item) for item in data or []]


def parse_amount(amount: Any) -> float:
    """Coerce a user-entered amount to a finite float or raise ValidationError."""
    if amount is None or isinstance(amount, bool):
        raise ValidationError("Please enter a valid offer amount")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid offer amount") from None
    if not math.isfinite(value):
        raise ValidationError("Please enter a valid offer amount")
    return value


def format_buying_date(buying_date: Union[date, datetime]) -> str:
    """ISO-8601 UTC timestamp; plain dates are taken as midnight UTC, naive datetimes as UTC."""
    if not isinstance(buying_date, datetime):
        buying_date = datetime.combine(buying_date, time.min, tzinfo=timezone.utc)
    elif buying_date.tzinfo is None:
        buying_date = buying_date.replace(tzinfo=timezone.utc)
    return buying_date.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _created_id(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        value = data.get("_id") or data.get("id") or data.get("insertedId")
        return str(value) if value else None
    return None


class OfferCoordinator:
    """Client-side guards and cache for the offer state machine."""

    def __init__(
        self,
        api: ApiClient,
        identity: Callable[[], Optional[Identity]],
        processor: Optional[PaymentProcessor] = None
    ):
        self.api = api
        self._identity = identity
        self.processor = processor
        self._mine: dict[str, Offer] = {}
        self._requested: dict[str, Offer] = {}
        self._owner: Optional[str] = None

    def _sync_owner(self) -> None:
        """Drop cached offers when a different user is signed in than the one they were fetched for."""
        identity = self._identity()
        owner = identity.provider_id if identity is not None else None
        if owner != self._owner:
            if self._mine or self._requested:
                logger.debug("Signed-in user changed, clearing cached offers")
            self._mine = {}
            self._requested = {}
            self._owner = owner

    # Read models (each refetch replaces the matching cache)

    async def my_offers(self) -> list[Offer]:
        self._sync_owner()
        owner = self._owner
        offers = _offers(await self.api.get("/offers/my-offers"))
        self._sync_owner()
        if self._owner == owner:
            self._mine = {offer.id: offer for offer in offers}
        return offers

    async def requested_offers(self) -> list[Offer]:
        """Offers made on the signed-in agent's properties."""
        self._sync_owner()
        owner = self._owner
        offers = _offers(await self.api.get("/offers/agent/requested-properties"))
        self._sync_owner()
        if self._owner == owner:
            self._requested = {offer.id: offer for offer in offers}
        return offers

    async def sold_offers(self) -> list[Offer]:
        return _offers(await self.api.get("/offers/agent/sold-properties"))

    async def total_sold_amount(self) -> float:
        data = await self.api.get("/offers/agent/total-sold-amount")
        return SoldTotal.model_validate(data or {}).total_sold_amount

    def cached(self, offer_id: str) -> Optional[Offer]:
        self._sync_owner()
        return self._mine.get(offer_id) or self._requested.get(offer_id)

    def active_offer_for(self, property_id: str) -> Optional[Offer]:
        """The buyer's cached pending/accepted offer on ``property_id``, if any."""
        self._sync_owner()
        for offer in self._mine.values():
            if offer.property_id == property_id and offer.is_active:
                return offer
        return None

    # Buyer actions

    async def create_offer(
        self,
        listing: Property,
        amount: Any,
        buying_date: Optional[Union[date, datetime]],
        buyer: Optional[Identity]
    ) -> Offer:
        """
        Submit a pending offer after the client-side guards pass.

        Raises:
            RoleError: buyer is not a buyer
            ValidationError: amount outside the property's bounds, missing date, or
                property not verified and listed
            DuplicateOfferError: an active offer already exists (cache or backend 409)
        """
        buyer = require_role(buyer, Role.BUYER, message=BUYERS_ONLY)
        value = parse_amount(amount)
        if not listing.accepts_amount(value):
            raise ValidationError(listing.bounds_message())
        if buying_date is None:
            raise ValidationError("Please select a buying date")
        if not listing.can_receive_offers:
            raise ValidationError("Only verified properties that are still listed can receive offers")

        if self.active_offer_for(listing.id) is not None:
            # A cached pending offer may since have been rejected
            await self.my_offers()
            existing = self.active_offer_for(listing.id)
            if existing is not None:
                raise DuplicateOfferError(status=existing.status.value)

        payload = {
            "propertyId": listing.id,
            "propertyTitle": listing.title,
            "propertyLocation": listing.location,
            "propertyImage": listing.image,
            "agentName": listing.agent_name,
            "agentEmail": listing.agent_email,
            "buyerEmail": buyer.email,
            "buyerName": buyer.display_name or buyer.email,
            "offeredAmount": value,
            "buyingDate": format_buying_date(buying_date),
            "status": OfferStatus.PENDING.value,
        }
        with log_timing("create_offer", logger=logger, property_id=listing.id):
            data = await self.api.post("/offers", json=payload)

        offer_id = _created_id(data)
        await self.my_offers()
        offer = (self._mine.get(offer_id) if offer_id else None) or self.active_offer_for(listing.id)
        if offer is None:
            if offer_id is None:
                raise ApiError("Offer was submitted but could not be read back", 502)
            offer = Offer.model_validate({**payload, "_id": offer_id})

        logger.info(
            "Offer submitted",
            offer_id=offer.id,
            property_id=listing.id,
            buyer_email=mask_email(buyer.email),
            offered_amount=value
        )
        return offer

    async def _buyer_offer(self, offer_id: str, refresh_if: Optional[OfferStatus] = None) -> Offer:
        """Cached buyer offer, refetched when missing or still in ``refresh_if``."""
        self._sync_owner()
        offer = self._mine.get(offer_id)
        if offer is None or (refresh_if is not None and offer.status == refresh_if):
            await self.my_offers()
            offer = self._mine.get(offer_id)
        if offer is None:
            raise NotFoundError("Offer not found", 404)
        return offer

    async def cancel_offer(self, offer_id: str) -> None:
        """Delete a pending offer. Accepted, rejected or bought offers cannot be cancelled."""
        require_role(self._identity(), Role.BUYER, message=BUYERS_ONLY)
        offer = await self._buyer_offer(offer_id)
        if not offer.can_cancel:
            raise OfferStateError(f"Only pending offers can be cancelled; this offer is {offer.status.value}")

        await self.api.delete(f"/offers/{offer_id}")
        logger.info("Offer cancelled", offer_id=offer_id)
        await self.my_offers()

    async def pay_offer(self, offer_id: str, payment_method: str) -> Offer:
        """
        Pay for an accepted offer.

        Phase one asks the backend for a payment intent for the offered amount; phase two
        confirms it with the processor. Only after the processor succeeds is the backend
        told to mark the offer bought. A processor failure leaves the offer accepted.
        """
        require_role(self._identity(), Role.BUYER, message=BUYERS_ONLY)
        if self.processor is None:
            raise ConfigurationError("Payment processing is not available at this time. Please contact support.")
        if not payment_method:
            raise ValidationError("A payment method is required")

        offer = await self._buyer_offer(offer_id, refresh_if=OfferStatus.PENDING)
        if not offer.can_pay:
            raise OfferStateError(f"Only accepted offers can be paid; this offer is {offer.status.value}")

        intent = PaymentIntent.model_validate(await self.api.post(
            "/payment/create-payment-intent",
            json={"amount": offer.offered_amount, "offerId": offer.id}
        ))
        result = await self.processor.confirm(intent, payment_method)
        if not result.succeeded:
            logger.warning("Payment not completed", offer_id=offer.id, payment_status=result.status)
            raise PaymentError("Payment status could not be confirmed. Please contact support.")

        await self.api.post(
            "/payment/confirm-payment",
            json={"paymentIntentId": result.payment_intent_id, "offerId": offer.id}
        )
        logger.info("Offer paid", offer_id=offer.id, payment_intent_id=result.payment_intent_id)

        await self.my_offers()
        return self._mine.get(offer.id) or offer

    # Agent actions

    def _check_agent_transition(self, offer_id: str, target: OfferStatus) -> None:
        cached = self.cached(offer_id)
        if cached is not None and not can_transition(cached.status, target):
            raise OfferStateError(f"Offer is {cached.status.value} and cannot become {target.value}")

    async def _respond(self, offer_id: str, target: OfferStatus, action: str) -> Optional[Offer]:
        require_role(self._identity(), Role.AGENT, message=AGENTS_ONLY)
        self._check_agent_transition(offer_id, target)

        await self.api.patch(f"/offers/agent/{action}/{offer_id}", json={"action": action})
        logger.info("Offer response sent", offer_id=offer_id, action=action)

        await self.requested_offers()
        return self._requested.get(offer_id)

    async def accept_offer(self, offer_id: str) -> Optional[Offer]:
        """
        Accept a pending offer.

        The backend rejects the property's other pending offers; the refetch that
        follows makes those rejections visible in ``requested_offers``.
        """
        return await self._respond(offer_id, OfferStatus.ACCEPTED, "accept")

    async def reject_offer(self, offer_id: str) -> Optional[Offer]:
        return await self._respond(offer_id, OfferStatus.REJECTED, "reject")
