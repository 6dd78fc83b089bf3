"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from billpay.models directly
"""

from billpay.models.user import User, UserType  # noqa: F401
from billpay.models.account import Account  # noqa: F401
from billpay.models.payee import Payee  # noqa: F401
from billpay.models.transaction import Transaction, TransactionStatus, TransactionType  # noqa: F401
from billpay.models.payment_verification import PaymentVerification, VerificationStatus  # noqa: F401
from billpay.models.system_config import SystemConfig  # noqa: F401
from billpay.models.notification_outbox import NotificationOutbox, OutboxStatus  # noqa: F401
