from order_intake.channels.base import MessageSource
from order_intake.channels.openphone import OpenPhoneSource

__all__ = ["MessageSource", "OpenPhoneSource"]
