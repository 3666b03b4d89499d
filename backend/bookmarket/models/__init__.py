from .auth import User, SessionToken
from .books import Book
from .purchases import Purchase
from .webhooks import WebhookDelivery

__all__ = [
    'User', 'SessionToken',
    'Book',
    'Purchase',
    'WebhookDelivery',
]
