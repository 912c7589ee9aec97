"""Checkout domain exports."""
from .entity import PaymentSession, PaymentState, PaymentStatus
from .state_machine import reduce

__all__ = ["PaymentSession", "PaymentState", "PaymentStatus", "reduce"]
