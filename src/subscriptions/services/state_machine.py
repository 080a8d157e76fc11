"""Subscription lifecycle state machine.

The only writer of subscription status. Transitions are applied with a
compare-and-set on the current status; a lost race re-reads the record and
re-evaluates, so concurrent deliveries of the same trigger produce exactly one
applied transition and exactly one round of side effects.

    PENDING   --ACTIVATED--> ACTIVE
    PENDING   --EXPIRED----> EXPIRED
    ACTIVE    --SUSPENDED--> SUSPENDED
    ACTIVE    --CANCELLED--> CANCELLED
    SUSPENDED --ACTIVATED--> ACTIVE
    SUSPENDED --CANCELLED--> CANCELLED
"""

from collections.abc import Callable

from subscriptions.models import (
    Subscription,
    SubscriptionStatus,
    SubscriptionTrigger,
    TransitionConflict,
    TransitionOutcome,
    TransitionResult,
)
from subscriptions.utils.logging import get_logger

from .subscription_repository import SubscriptionRepository

logger = get_logger(__name__)

TransitionListener = Callable[[Subscription, SubscriptionStatus, SubscriptionStatus], None]

TRANSITIONS: dict[tuple[SubscriptionStatus, SubscriptionTrigger], SubscriptionStatus] = {
    (SubscriptionStatus.PENDING, SubscriptionTrigger.ACTIVATED): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.PENDING, SubscriptionTrigger.EXPIRED): SubscriptionStatus.EXPIRED,
    (SubscriptionStatus.ACTIVE, SubscriptionTrigger.SUSPENDED): SubscriptionStatus.SUSPENDED,
    (SubscriptionStatus.ACTIVE, SubscriptionTrigger.CANCELLED): SubscriptionStatus.CANCELLED,
    (SubscriptionStatus.SUSPENDED, SubscriptionTrigger.ACTIVATED): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.SUSPENDED, SubscriptionTrigger.CANCELLED): SubscriptionStatus.CANCELLED,
}

# Status each trigger leads to; reaching it again is an idempotent no-op
TRIGGER_TARGETS: dict[SubscriptionTrigger, SubscriptionStatus] = {
    SubscriptionTrigger.ACTIVATED: SubscriptionStatus.ACTIVE,
    SubscriptionTrigger.SUSPENDED: SubscriptionStatus.SUSPENDED,
    SubscriptionTrigger.CANCELLED: SubscriptionStatus.CANCELLED,
    SubscriptionTrigger.EXPIRED: SubscriptionStatus.EXPIRED,
}

EVENT_TYPE_TRIGGERS: dict[str, SubscriptionTrigger] = {
    "BILLING.SUBSCRIPTION.ACTIVATED": SubscriptionTrigger.ACTIVATED,
    "BILLING.SUBSCRIPTION.SUSPENDED": SubscriptionTrigger.SUSPENDED,
    "BILLING.SUBSCRIPTION.CANCELLED": SubscriptionTrigger.CANCELLED,
    "BILLING.SUBSCRIPTION.EXPIRED": SubscriptionTrigger.EXPIRED,
}


def trigger_for_event_type(event_type: str | None) -> SubscriptionTrigger | None:
    """Map a PayPal webhook event type to a trigger, None if unhandled."""
    if not event_type:
        return None
    return EVENT_TYPE_TRIGGERS.get(event_type)


class SubscriptionStateMachine:
    """Applies lifecycle triggers to stored subscriptions.

    Usage:
        machine = SubscriptionStateMachine(repository)
        machine.add_listener(send_welcome_email)
        outcome = machine.apply("I-BW452GLLEP1G", SubscriptionTrigger.ACTIVATED)
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        listeners: list[TransitionListener] | None = None,
        max_cas_attempts: int = 3,
    ) -> None:
        """Initialize state machine.

        Args:
            repository: Subscription storage
            listeners: Callbacks run after a transition is committed
            max_cas_attempts: Re-read/re-evaluate rounds after a lost race
        """
        self._repository = repository
        self._listeners: list[TransitionListener] = list(listeners or [])
        self._max_cas_attempts = max_cas_attempts

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def apply(
        self, provider_subscription_id: str, trigger: SubscriptionTrigger
    ) -> TransitionOutcome:
        """Apply a trigger to the subscription with this provider ID.

        Args:
            provider_subscription_id: PayPal subscription ID (I-xxx)
            trigger: Lifecycle trigger

        Returns:
            TransitionOutcome with result APPLIED, ALREADY_APPLIED, IGNORED
            or UNKNOWN_SUBSCRIPTION

        Raises:
            TransitionConflict: If the compare-and-set kept losing races
        """
        subscription = self._repository.find_by_provider_id(provider_subscription_id)

        for attempt in range(1, self._max_cas_attempts + 1):
            if subscription is None:
                logger.warning(
                    "Trigger %s for unknown subscription %s",
                    trigger.value,
                    provider_subscription_id,
                )
                return TransitionOutcome(
                    result=TransitionResult.UNKNOWN_SUBSCRIPTION,
                    provider_subscription_id=provider_subscription_id,
                    trigger=trigger,
                )

            current = subscription.status
            outcome = TransitionOutcome(
                result=TransitionResult.ALREADY_APPLIED,
                provider_subscription_id=provider_subscription_id,
                trigger=trigger,
                previous_status=current,
                status=current,
                subscription_id=subscription.subscription_id,
            )

            if current == TRIGGER_TARGETS[trigger]:
                logger.info(
                    "Subscription %s already %s, trigger %s is a no-op",
                    subscription.subscription_id,
                    current.value,
                    trigger.value,
                )
                return outcome

            target = TRANSITIONS.get((current, trigger))
            if target is None:
                logger.warning(
                    "Ignored transition: %s --%s--> (subscription %s)",
                    current.value,
                    trigger.value,
                    subscription.subscription_id,
                )
                return outcome.model_copy(update={"result": TransitionResult.IGNORED})

            if self._repository.update_status(
                subscription.subscription_id, target, expected_status=current
            ):
                logger.info(
                    "Subscription %s transitioned %s -> %s on %s",
                    subscription.subscription_id,
                    current.value,
                    target.value,
                    trigger.value,
                )
                self._notify(subscription, current, target)
                return outcome.model_copy(
                    update={"result": TransitionResult.APPLIED, "status": target}
                )

            logger.info(
                "Status of subscription %s changed concurrently (attempt %d/%d), re-reading",
                subscription.subscription_id,
                attempt,
                self._max_cas_attempts,
            )
            subscription = self._repository.get(subscription.subscription_id)

        raise TransitionConflict(
            details={"provider_subscription_id": provider_subscription_id}
        )

    def _notify(
        self,
        subscription: Subscription,
        previous: SubscriptionStatus,
        new: SubscriptionStatus,
    ) -> None:
        updated = subscription.model_copy(update={"status": new})
        for listener in self._listeners:
            try:
                listener(updated, previous, new)
            except Exception:
                # Transition is committed; a failing side effect must not undo it
                logger.exception(
                    "Transition listener %s failed for subscription %s",
                    getattr(listener, "__name__", type(listener).__name__),
                    subscription.subscription_id,
                )
