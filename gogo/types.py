"""
Enumerations shared by records, services and the HTTP schemas.

Values are the strings stored in documents, so they must not change.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class UserRole(StrEnum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    MERCHANT = "merchant"
    ADMIN = "admin"


ROLE_HIERARCHY = {
    UserRole.ADMIN: 4,
    UserRole.MERCHANT: 3,
    UserRole.DRIVER: 2,
    UserRole.CUSTOMER: 1,
}


def has_minimum_role(user_role: Optional[str], required: UserRole) -> bool:
    """Check if a role has at least the required level."""
    if not user_role:
        return False
    try:
        level = ROLE_HIERARCHY[UserRole(user_role)]
    except ValueError:
        return False
    return level >= ROLE_HIERARCHY[required]


class AccountStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class DriverStatus(StrEnum):
    OFFLINE = "offline"
    ONLINE = "online"
    BUSY = "busy"


class VehicleType(StrEnum):
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    VAN = "van"
    DELIVERY = "delivery"
    HAPPY_MOVE = "happy_move"
    AIRPORT = "airport"


class RideStatus(StrEnum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    ACCEPTED = "accepted"
    ARRIVING = "arriving"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ORDER_STATUS_LABELS = {
    OrderStatus.PENDING: "Order Placed",
    OrderStatus.CONFIRMED: "Order Confirmed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY: "Ready for Pickup",
    OrderStatus.PICKED_UP: "Picked Up",
    OrderStatus.ON_THE_WAY: "On the Way",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.COMPLETED: "Completed",
    OrderStatus.CANCELLED: "Cancelled",
}


class OrderType(StrEnum):
    FOOD = "food"
    GROCERY = "grocery"
    PHARMACY = "pharmacy"


class MerchantType(StrEnum):
    RESTAURANT = "restaurant"
    GROCERY = "grocery"
    CONVENIENCE = "convenience"
    PHARMACY = "pharmacy"


class MerchantStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class ApplicationStatus(StrEnum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentMethod(StrEnum):
    CASH = "cash"
    GCASH = "gcash"
    WALLET = "wallet"
    CARD = "card"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PENDING_CASH = "pending_cash"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PromoType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_DELIVERY = "free_delivery"


class ServiceType(StrEnum):
    RIDES = "rides"
    FOOD = "food"
    GROCERY = "grocery"
    PHARMACY = "pharmacy"


class TransactionType(StrEnum):
    TOPUP = "topup"
    PAYMENT = "payment"
    REFUND = "refund"


class TransactionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CancelledBy(StrEnum):
    PASSENGER = "passenger"
    CUSTOMER = "customer"
    DRIVER = "driver"
    MERCHANT = "merchant"
    SYSTEM = "system"


class NotificationType(StrEnum):
    RIDE_REQUEST = "ride_request"
    RIDE_UPDATE = "ride_update"
    RIDE_CANCELLED = "ride_cancelled"
    ORDER_NEW = "order_new"
    ORDER_UPDATE = "order_update"
    DELIVERY_REQUEST = "delivery_request"
    WALLET = "wallet"
    ACCOUNT = "account"
    GENERAL = "general"


class ChatType(StrEnum):
    RIDE = "ride"
    ORDER = "order"


class ChatStatus(StrEnum):
    ACTIVE = "active"
    CLOSED = "closed"


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    LOCATION = "location"
    SYSTEM = "system"
