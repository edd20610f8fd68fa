from orgpulse.models.stripe_cancellation import StripeCancellation
from orgpulse.models.stripe_coupon import CouponDuration, StripeCoupon
from orgpulse.models.stripe_payment import PaymentStatus, StripePayment
from orgpulse.models.stripe_subscription import StripeSubscription, SubscriptionStatus
from orgpulse.models.stripe_sync_metadata import StripeSyncMetadata, SyncStatus
from orgpulse.models.user_connection import UserConnection

__all__ = [
    "CouponDuration",
    "PaymentStatus",
    "StripeCancellation",
    "StripeCoupon",
    "StripePayment",
    "StripeSubscription",
    "StripeSyncMetadata",
    "SubscriptionStatus",
    "SyncStatus",
    "UserConnection",
]
