from sqlalchemy.orm import declarative_base

Base = declarative_base()

from .user import User as User  # noqa: E402
from .subject import Subject as Subject  # noqa: E402
from .topic import Topic as Topic  # noqa: E402
from .issue import Issue as Issue, IssueStatus as IssueStatus  # noqa: E402
from .delivery import Delivery as Delivery, DeliveryStatus as DeliveryStatus  # noqa: E402
from .subscription import Subscription as Subscription, SubscriptionStatus as SubscriptionStatus  # noqa: E402
from .subscription_audit import (  # noqa: E402
    AuditChangeType as AuditChangeType,
    SubscriptionAudit as SubscriptionAudit,
    SubscriptionAuditReason as SubscriptionAuditReason,
)
from .newsletter_sequence import NewsletterSequence as NewsletterSequence  # noqa: E402
from .newsletter_send_result import NewsletterSendResult as NewsletterSendResult  # noqa: E402
