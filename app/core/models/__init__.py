from app.core.models.agency import Agency
from app.core.models.agency_subscription import AgencySubscription
from app.core.models.discount_coupon import DiscountCoupon
from app.core.models.platform_setting import PlatformSetting
from app.core.models.provisioning_step import ProvisioningStep
from app.core.models.subscription_plan import SubscriptionPlan
from app.core.models.webhook_event import ProcessedWebhookEvent
from app.core.models.workflow import PipelineStage, TaskColumn

__all__ = [
    "Agency",
    "AgencySubscription",
    "DiscountCoupon",
    "PipelineStage",
    "PlatformSetting",
    "ProcessedWebhookEvent",
    "ProvisioningStep",
    "SubscriptionPlan",
    "TaskColumn",
]
