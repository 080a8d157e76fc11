"""Subscription orchestrator: the public face of the PayPal integration.

Operations:
- create_plan: register a billing plan with the provider
- create_subscription: start a subscription and hand back the approval URL
- handle_webhook: verify, de-duplicate and apply a lifecycle event
- confirm_approval: re-check a subscription with the provider after the
  subscriber returns from the approval page
- expire_stale_pending: scheduled sweep that expires abandoned approvals

Outbound calls go through the ResilientRequestExecutor; status changes only
through the SubscriptionStateMachine.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from subscriptions.config import Settings
from subscriptions.models import (
    MalformedProviderResponse,
    Plan,
    PlanSpec,
    ProductNotConfigured,
    ProviderRequest,
    ProviderUnavailable,
    RequestRejected,
    Subscriber,
    Subscription,
    SubscriptionCheckout,
    SubscriptionStatus,
    SubscriptionTrigger,
    TransitionOutcome,
    TransitionResult,
    WebhookDisposition,
    WebhookEvent,
    WebhookResult,
    find_link,
    generate_idempotency_key,
)
from subscriptions.utils.logging import get_logger, log_webhook_event

from .request_executor import ResilientRequestExecutor
from .state_machine import SubscriptionStateMachine, trigger_for_event_type
from .subscription_repository import SubscriptionRepository
from .webhook_event_log import WebhookEventLog
from .webhook_verifier import WebhookVerifier

logger = get_logger(__name__)

PLANS_PATH = "/v1/billing/plans"
SUBSCRIPTIONS_PATH = "/v1/billing/subscriptions"

# PayPal expects UTC timestamps without fractional seconds
START_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

APPROVE_REL = "approve"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(amount: Decimal, currency: str) -> dict[str, str]:
    return {"value": f"{amount:.2f}", "currency_code": currency}


def generate_subscription_id() -> str:
    """Generate a local subscription ID like SUB-1A2B3C4D5E6F."""
    return f"SUB-{uuid.uuid4().hex[:12].upper()}"


class SubscriptionOrchestrator:
    """Coordinates provider calls, verification and lifecycle transitions.

    Usage:
        orchestrator = SubscriptionOrchestrator(
            executor, verifier, state_machine, repository, event_log, settings
        )
        checkout = await orchestrator.create_subscription("P-123", subscriber)
        redirect(checkout.approval_url)
    """

    def __init__(
        self,
        executor: ResilientRequestExecutor,
        verifier: WebhookVerifier,
        state_machine: SubscriptionStateMachine,
        repository: SubscriptionRepository,
        event_log: WebhookEventLog,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._executor = executor
        self._verifier = verifier
        self._state_machine = state_machine
        self._repository = repository
        self._event_log = event_log
        self._settings = settings
        self._clock = clock

    # =========================================================================
    # Plans
    # =========================================================================

    def build_plan_payload(self, spec: PlanSpec) -> dict[str, Any]:
        """Translate a PlanSpec into the PayPal plan document.

        Raises:
            ProductNotConfigured: If neither the PlanSpec nor settings name a product
        """
        product_id = spec.product_id or self._settings.product_id
        if not product_id:
            raise ProductNotConfigured()

        setup_fee = spec.setup_fee if spec.setup_fee is not None else Decimal("0")
        return {
            "product_id": product_id,
            "name": spec.name,
            "description": spec.description or spec.name,
            "status": "ACTIVE",
            "billing_cycles": [
                {
                    "frequency": {
                        "interval_unit": spec.interval.value,
                        "interval_count": spec.interval_count,
                    },
                    "tenure_type": "REGULAR",
                    "sequence": 1,
                    "total_cycles": spec.total_cycles,
                    "pricing_scheme": {
                        "fixed_price": _money(spec.price, spec.currency),
                    },
                }
            ],
            "payment_preferences": {
                "auto_bill_outstanding": True,
                "setup_fee": _money(setup_fee, spec.currency),
                "setup_fee_failure_action": "CONTINUE",
                "payment_failure_threshold": spec.payment_failure_threshold,
            },
        }

    async def create_plan(self, spec: PlanSpec) -> Plan:
        """Register a billing plan with the provider.

        Args:
            spec: Plan name, price and billing cycle

        Returns:
            The provider's plan representation

        Raises:
            ProductNotConfigured: If no product is configured
            SubscriptionServiceError: On provider failure
        """
        payload = self.build_plan_payload(spec)
        body = await self._executor.execute(
            ProviderRequest(
                method="POST",
                path=PLANS_PATH,
                body=payload,
                idempotency_key=generate_idempotency_key("plan"),
            )
        )
        if not body.get("id"):
            raise MalformedProviderResponse("Plan response missing id")

        plan = Plan.model_validate(body)
        logger.info("Plan %s created (%s, status=%s)", plan.id, spec.name, plan.status)
        return plan

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def build_subscription_payload(self, plan_id: str, subscriber: Subscriber) -> dict[str, Any]:
        start_time = self._clock() + timedelta(minutes=self._settings.start_delay_minutes)
        return {
            "plan_id": plan_id,
            "start_time": start_time.strftime(START_TIME_FORMAT),
            "subscriber": {
                "name": {
                    "given_name": subscriber.given_name,
                    "surname": subscriber.surname,
                },
                "email_address": subscriber.email,
            },
            "application_context": {
                "brand_name": self._settings.brand_name,
                "locale": "en-US",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "SUBSCRIBE_NOW",
                "payment_method": {
                    "payer_selected": "PAYPAL",
                    "payee_preferred": "IMMEDIATE_PAYMENT_REQUIRED",
                },
                "return_url": self._settings.return_url,
                "cancel_url": self._settings.cancel_url,
            },
        }

    async def create_subscription(
        self,
        plan_id: str,
        subscriber: Subscriber,
        idempotency_key: str | None = None,
    ) -> SubscriptionCheckout:
        """Start a subscription and persist it as PENDING.

        Args:
            plan_id: Provider plan ID (P-xxx)
            subscriber: User subscribing
            idempotency_key: Reuse to make a client-side retry safe

        Returns:
            SubscriptionCheckout with the approval URL

        Raises:
            MalformedProviderResponse: If the response lacks an ID or approve link
            DuplicateSubscription: If the provider ID is already stored
            SubscriptionServiceError: On provider failure
        """
        request = ProviderRequest(
            method="POST",
            path=SUBSCRIPTIONS_PATH,
            body=self.build_subscription_payload(plan_id, subscriber),
            idempotency_key=idempotency_key or generate_idempotency_key("sub"),
        )
        body = await self._executor.execute(request)

        provider_subscription_id = body.get("id")
        if not isinstance(provider_subscription_id, str) or not provider_subscription_id:
            raise MalformedProviderResponse("Subscription response missing id")

        links = body.get("links")
        approval_url = find_link(links, APPROVE_REL) if isinstance(links, list) else None
        if not approval_url:
            raise MalformedProviderResponse("Subscription response missing approve link")

        now = self._clock()
        subscription = Subscription(
            subscription_id=generate_subscription_id(),
            user_id=subscriber.user_id,
            provider_subscription_id=provider_subscription_id,
            plan_id=plan_id,
            status=SubscriptionStatus.PENDING,
            metadata=body,
            subscriber_email=subscriber.email,
            created_at=now,
            updated_at=now,
        )
        self._repository.create(subscription)

        logger.info(
            "Subscription %s created for plan %s (provider id %s), awaiting approval",
            subscription.subscription_id,
            plan_id,
            provider_subscription_id,
        )
        return SubscriptionCheckout(
            approval_url=approval_url,
            subscription_id=subscription.subscription_id,
            provider_subscription_id=provider_subscription_id,
        )

    async def confirm_approval(self, provider_subscription_id: str) -> TransitionOutcome:
        """Reconcile a subscription with the provider after the approval redirect.

        Callback parameters are untrusted; only the provider's own answer can
        move the subscription.

        Args:
            provider_subscription_id: PayPal subscription ID from the return URL

        Returns:
            TransitionOutcome (NO_CHANGE while approval is still pending)

        Raises:
            SubscriptionServiceError: On provider failure other than not-found
        """
        subscription = self._repository.find_by_provider_id(provider_subscription_id)
        if subscription is None:
            logger.warning("Approval return for unknown subscription %s", provider_subscription_id)
            return TransitionOutcome(
                result=TransitionResult.UNKNOWN_SUBSCRIPTION,
                provider_subscription_id=provider_subscription_id,
            )
        return await self._reconcile(subscription, self._clock())

    async def expire_stale_pending(self, now: datetime | None = None) -> list[TransitionOutcome]:
        """Reconcile every PENDING subscription older than the approval window.

        Runs on a schedule so abandoned approvals expire without the
        subscriber ever returning. Each record is checked with the provider
        first; one the subscriber did approve is activated instead.

        Args:
            now: Reference time, defaults to the orchestrator clock

        Returns:
            One TransitionOutcome per record that was checked
        """
        now = now or self._clock()
        cutoff = now - timedelta(hours=self._settings.pending_ttl_hours)
        stale = self._repository.find_pending_created_before(cutoff)
        logger.info("Found %d pending subscriptions created before %s", len(stale), cutoff)

        outcomes = []
        for subscription in stale:
            try:
                outcomes.append(await self._reconcile(subscription, now))
            except ProviderUnavailable as e:
                logger.warning(
                    "Skipping %s until the next sweep: %s", subscription.subscription_id, e
                )
        return outcomes

    async def _reconcile(self, subscription: Subscription, now: datetime) -> TransitionOutcome:
        provider_subscription_id = subscription.provider_subscription_id
        try:
            body = await self._executor.execute(
                ProviderRequest(
                    method="GET",
                    path=f"{SUBSCRIPTIONS_PATH}/{provider_subscription_id}",
                )
            )
        except RequestRejected as e:
            if e.status_code != 404:
                raise
            logger.info("Provider no longer knows subscription %s", provider_subscription_id)
            return self._state_machine.apply(provider_subscription_id, SubscriptionTrigger.EXPIRED)

        provider_status = body.get("status")
        if provider_status == "ACTIVE":
            return self._state_machine.apply(
                provider_subscription_id, SubscriptionTrigger.ACTIVATED
            )

        if provider_status == "EXPIRED":
            return self._state_machine.apply(provider_subscription_id, SubscriptionTrigger.EXPIRED)

        pending_ttl = timedelta(hours=self._settings.pending_ttl_hours)
        if provider_status == "APPROVAL_PENDING" and (
            now - subscription.created_at > pending_ttl
        ):
            logger.info(
                "Subscription %s still pending after %s, expiring",
                subscription.subscription_id,
                pending_ttl,
            )
            return self._state_machine.apply(provider_subscription_id, SubscriptionTrigger.EXPIRED)

        logger.info(
            "Subscription %s unchanged, provider status %s",
            subscription.subscription_id,
            provider_status,
        )
        return TransitionOutcome(
            result=TransitionResult.NO_CHANGE,
            provider_subscription_id=provider_subscription_id,
            previous_status=subscription.status,
            status=subscription.status,
            subscription_id=subscription.subscription_id,
        )

    # =========================================================================
    # Webhooks
    # =========================================================================

    async def handle_webhook(self, event: WebhookEvent) -> WebhookResult:
        """Process one inbound webhook delivery.

        Args:
            event: Byte-exact body plus headers

        Returns:
            WebhookResult: REJECT when verification fails, otherwise ACK

        Raises:
            TransitionConflict: If the status update kept racing; the event is
                not recorded so the provider's redelivery retries it
        """
        if not await self._verifier.verify(event):
            log_webhook_event(logger, event.event_type, event.event_id, result="rejected")
            return WebhookResult(disposition=WebhookDisposition.REJECT, outcome="rejected")

        event_id = event.event_id
        event_type = event.event_type
        if not event_id or not event_type:
            log_webhook_event(logger, event_type, event_id, result="malformed")
            return WebhookResult(
                disposition=WebhookDisposition.ACK,
                outcome="malformed",
                event_id=event_id,
                event_type=event_type,
            )

        if self._event_log.is_processed(event_id):
            log_webhook_event(logger, event_type, event_id, result="duplicate")
            return WebhookResult(
                disposition=WebhookDisposition.ACK,
                outcome="duplicate",
                event_id=event_id,
                event_type=event_type,
            )

        trigger = trigger_for_event_type(event_type)
        if trigger is None or not event.resource_id:
            outcome = "unhandled" if trigger is None else "malformed"
            log_webhook_event(logger, event_type, event_id, result=outcome)
            self._event_log.record(event_id, event_type, event.raw_body, outcome)
            return WebhookResult(
                disposition=WebhookDisposition.ACK,
                outcome=outcome,
                event_id=event_id,
                event_type=event_type,
            )

        provider_subscription_id = event.resource_id
        transition = self._state_machine.apply(provider_subscription_id, trigger)
        self._event_log.record(
            event_id,
            event_type,
            event.raw_body,
            transition.result.value,
            resource_hash=self._repository.provider_hash(provider_subscription_id),
        )
        log_webhook_event(
            logger,
            event_type,
            event_id,
            provider_subscription_id=provider_subscription_id,
            result=transition.result.value,
        )
        return WebhookResult(
            disposition=WebhookDisposition.ACK,
            outcome=transition.result.value,
            event_id=event_id,
            event_type=event_type,
            transition=transition,
        )
