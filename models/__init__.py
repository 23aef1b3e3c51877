# Import models so that SQLAlchemy metadata includes them on app startup
from .merchant import Merchant  # noqa: F401
from .payment_method import PaymentMethod, PaymentMethodType  # noqa: F401
from .payment import Payment, PaymentStatus, TERMINAL_STATUSES  # noqa: F401
