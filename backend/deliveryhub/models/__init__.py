from .auth import User, SessionToken
from .accounts import Account, CreditAudit
from .orders import Order
from .billing import PaymentPlan, ProcessedPaymentEvent
from .security import SecurityEvent

__all__ = [
    'User', 'SessionToken',
    'Account', 'CreditAudit',
    'Order',
    'PaymentPlan', 'ProcessedPaymentEvent',
    'SecurityEvent',
]
