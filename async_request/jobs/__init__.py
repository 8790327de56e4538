"""
Background jobs run through an AsyncDispatcher.
"""
from .base import AsyncJob, BackgroundJob
from .email_notify import EmailNotifyJob

__all__ = ["AsyncJob", "BackgroundJob", "EmailNotifyJob"]
