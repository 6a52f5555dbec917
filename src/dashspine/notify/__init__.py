"""Chat and webhook notifications for published dashboards."""

from dashspine.notify.base import BaseDestination
from dashspine.notify.dispatcher import Dispatcher, DispatchReport, build_destinations
from dashspine.notify.protocol import DeliveryResult, Destination, DestinationKind, Notification
from dashspine.notify.slack import SlackDestination
from dashspine.notify.teams import TeamsDestination

__all__ = [
    "BaseDestination",
    "Dispatcher",
    "DispatchReport",
    "build_destinations",
    "DeliveryResult",
    "Destination",
    "DestinationKind",
    "Notification",
    "SlackDestination",
    "TeamsDestination",
]
