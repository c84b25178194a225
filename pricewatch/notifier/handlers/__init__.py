"""Notification handlers package."""
from .email import EmailHandler
from .sms import SMSHandler

__all__ = ["EmailHandler", "SMSHandler"]
