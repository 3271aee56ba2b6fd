"""Inbound message producers and the pipeline they feed."""

from .broadcast import SMS_DELIVER_ACTION, SmsBroadcastReceiver, SmsFragment
from .dedup import FingerprintCache, compute_fingerprint
from .notifications import NotificationObserver, PostedNotification
from .pipeline import InboundPipeline
from .store_observer import MessageStoreObserver

__all__ = [
    "FingerprintCache",
    "InboundPipeline",
    "MessageStoreObserver",
    "NotificationObserver",
    "PostedNotification",
    "SMS_DELIVER_ACTION",
    "SmsBroadcastReceiver",
    "SmsFragment",
    "compute_fingerprint",
]
