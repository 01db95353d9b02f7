from .tenancy import Organization, Store, PaymentProcessorCredential
from .auth import User, SessionToken
from .security import SecurityEvent
from .customers import Customer
from .inventory import Part, PartStockMovement
from .tickets import Ticket, TicketCost, TicketApproval, TicketFeedback
from .payments import Payment
from .warranties import Warranty
from .transfers import TicketTransfer
from .communications import Notification, EmailOutbox
from .documents import DocumentSequence

__all__ = [
    'Organization', 'Store', 'PaymentProcessorCredential',
    'User', 'SessionToken', 'SecurityEvent',
    'Customer',
    'Part', 'PartStockMovement',
    'Ticket', 'TicketCost', 'TicketApproval', 'TicketFeedback',
    'Payment', 'Warranty', 'TicketTransfer',
    'Notification', 'EmailOutbox',
    'DocumentSequence',
]
