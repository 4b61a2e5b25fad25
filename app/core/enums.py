from enum import Enum


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AppRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    AGENT = "agent"


class WebhookEventType(str, Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class WebhookOutcome(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    UNHANDLED = "unhandled"


class AccessDecisionKind(str, Enum):
    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


class AccessBlockReason(str, Enum):
    NO_AGENCY = "NoAgency"
    INACTIVE_SUBSCRIPTION = "InactiveSubscription"
    TRIAL_EXPIRED = "TrialExpired"


class ProvisioningStepName(str, Enum):
    CREATE_AGENCY = "create_agency"
    LINK_PROFILE = "link_profile"
    ASSIGN_ADMIN_ROLE = "assign_admin_role"
    CREATE_TRIAL_SUBSCRIPTION = "create_trial_subscription"
    SEED_PIPELINE_STAGES = "seed_pipeline_stages"
    SEED_TASK_COLUMNS = "seed_task_columns"
