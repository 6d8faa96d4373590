from orderdesk.models.order_record import OrderRecord
from orderdesk.models.raw_order_event import RawOrderEvent
from orderdesk.models.shipping_label import ShippingLabel

__all__ = ["OrderRecord", "RawOrderEvent", "ShippingLabel"]
