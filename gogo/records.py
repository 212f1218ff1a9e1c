"""
Typed records mirrored 1:1 from stored documents.

Every record is a plain dataclass. ``as_dict`` produces the stored JSON
document and ``load_record`` rebuilds a record from one.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from dacite import Config, from_dict

from gogo.types import (
    AccountStatus,
    ApplicationStatus,
    CancelledBy,
    ChatStatus,
    ChatType,
    DriverStatus,
    MerchantStatus,
    MerchantType,
    MessageType,
    NotificationType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    PromoType,
    RideStatus,
    ServiceType,
    TransactionStatus,
    TransactionType,
    UserRole,
    VehicleType,
)

R = TypeVar("R")

_DACITE_CONFIG = Config(cast=[Enum], check_types=False)


def now_ts() -> float:
    return time.time()


def new_id(prefix: str) -> str:
    """Sortable, collision-resistant document id such as ``ride_1718000000000_3f9a1c2b7``."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def load_record(record_cls: Type[R], data: dict) -> R:
    return from_dict(data_class=record_cls, data=data, config=_DACITE_CONFIG)


class _Record:
    def as_dict(self) -> dict:
        return asdict(self)


# Value types ---------------------------------------------------------------


@dataclass
class GeoPoint:
    latitude: float
    longitude: float


@dataclass
class Place:
    address: str
    coordinates: GeoPoint
    details: Optional[str] = None


@dataclass
class RouteInfo:
    distance: float  # meters
    duration: float  # seconds
    polyline: str = ""
    estimated: bool = False


@dataclass
class RideFare:
    base: float
    distance: float
    time: float
    surge: float = 0.0
    discount: float = 0.0
    total: float = 0.0


@dataclass
class SavedLocation:
    id: str
    label: str
    address: str
    coordinates: GeoPoint
    type: str = "other"  # home | work | other
    details: Optional[str] = None


@dataclass
class NotificationSettings:
    push: bool = True
    email: bool = True
    sms: bool = True
    promotions: bool = True


@dataclass
class UserSettings:
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    language: str = "en"
    currency: str = "PHP"


@dataclass
class Vehicle:
    make: str
    model: str
    year: int
    color: str
    plate_number: str
    registration_expiry: Optional[float] = None


@dataclass
class DriverLicense:
    number: str
    expiry: Optional[float] = None
    type: str = "professional"
    front_image: Optional[str] = None
    back_image: Optional[str] = None


@dataclass
class OperatingHours:
    day: int  # 0-6, Sunday first
    open: str  # "09:00"
    close: str  # "22:00"
    is_closed: bool = False


@dataclass
class ProductChoice:
    name: str
    price: float = 0.0


@dataclass
class ProductOption:
    name: str
    choices: List[ProductChoice]
    required: bool = False
    max_select: int = 1


@dataclass
class ProductAddon:
    name: str
    price: float
    is_available: bool = True


@dataclass
class SelectedOption:
    name: str
    choice: str
    price: float = 0.0


@dataclass
class SelectedAddon:
    name: str
    price: float = 0.0


@dataclass
class OrderItem:
    product_id: str
    name: str
    quantity: int
    price: float  # unit price including options and addons
    total: float
    options: List[SelectedOption] = field(default_factory=list)
    addons: List[SelectedAddon] = field(default_factory=list)
    special_instructions: Optional[str] = None


@dataclass
class DeliveryAddress:
    address: str
    coordinates: GeoPoint
    contact_name: str
    contact_phone: str
    details: Optional[str] = None


# Documents -----------------------------------------------------------------


@dataclass
class UserRecord(_Record):
    user_id: str
    phone: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.CUSTOMER
    status: AccountStatus = AccountStatus.ACTIVE
    profile_image: Optional[str] = None
    wallet_balance: float = 0.0
    referral_code: str = ""
    referred_by: Optional[str] = None
    saved_locations: List[SavedLocation] = field(default_factory=list)
    favorite_merchants: List[str] = field(default_factory=list)
    settings: UserSettings = field(default_factory=UserSettings)
    push_token: Optional[str] = None
    notifications_enabled: bool = False
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class DriverRecord(_Record):
    driver_id: str
    user_id: str
    first_name: str
    last_name: str
    phone: str
    vehicle_type: VehicleType
    vehicle: Vehicle
    license: DriverLicense
    email: Optional[str] = None
    profile_image: Optional[str] = None
    documents: Dict[str, str] = field(default_factory=dict)
    status: DriverStatus = DriverStatus.OFFLINE
    current_location: Optional[GeoPoint] = None
    current_ride_id: Optional[str] = None
    current_order_id: Optional[str] = None
    rating: float = 5.0
    rating_count: int = 0
    total_rides: int = 0
    total_deliveries: int = 0
    total_earnings: float = 0.0
    requests_seen: int = 0
    requests_accepted: int = 0
    cancellations: int = 0
    verified: bool = False
    application_status: ApplicationStatus = ApplicationStatus.PENDING
    rejection_reason: Optional[str] = None
    verified_at: Optional[float] = None
    suspended_until: Optional[float] = None
    suspension_reason: Optional[str] = None
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)

    def is_suspended(self, at: Optional[float] = None) -> bool:
        return bool(self.suspended_until and self.suspended_until > (at or now_ts()))


@dataclass
class MerchantRecord(_Record):
    merchant_id: str
    owner_id: str
    name: str
    type: MerchantType
    address: str
    coordinates: GeoPoint
    phone: str
    email: str = ""
    description: str = ""
    logo: str = ""
    cover_image: str = ""
    categories: List[str] = field(default_factory=list)
    operating_hours: List[OperatingHours] = field(default_factory=list)
    delivery_fee: float = 49.0
    min_order: float = 0.0
    estimated_delivery: str = "30-45 min"
    rating: float = 0.0
    review_count: int = 0
    total_orders: int = 0
    is_open: bool = False
    is_featured: bool = False
    status: MerchantStatus = MerchantStatus.ACTIVE
    verified: bool = False
    application_status: ApplicationStatus = ApplicationStatus.PENDING
    rejection_reason: Optional[str] = None
    verified_at: Optional[float] = None
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)


@dataclass
class ProductRecord(_Record):
    product_id: str
    merchant_id: str
    name: str
    price: float
    category: str
    description: str = ""
    sale_price: Optional[float] = None
    image: str = ""
    subcategory: Optional[str] = None
    options: List[ProductOption] = field(default_factory=list)
    addons: List[ProductAddon] = field(default_factory=list)
    is_available: bool = True
    is_featured: bool = False
    preparation_time: Optional[int] = None  # minutes
    tags: List[str] = field(default_factory=list)
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)

    @property
    def effective_price(self) -> float:
        return self.sale_price if self.sale_price is not None else self.price


@dataclass
class RideRecord(_Record):
    ride_id: str
    passenger_id: str
    vehicle_type: VehicleType
    pickup: Place
    dropoff: Place
    fare: RideFare
    payment_method: PaymentMethod
    status: RideStatus = RideStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    driver_id: Optional[str] = None
    route: Optional[RouteInfo] = None
    promo_code: Optional[str] = None
    surge_multiplier: float = 1.0
    declined_by: List[str] = field(default_factory=list)
    scheduled_at: Optional[float] = None
    accepted_at: Optional[float] = None
    arriving_at: Optional[float] = None
    arrived_at: Optional[float] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    cancelled_at: Optional[float] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    paid_at: Optional[float] = None
    payment_transaction_id: Optional[str] = None
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)


@dataclass
class OrderRecord(_Record):
    order_id: str
    customer_id: str
    merchant_id: str
    type: OrderType
    items: List[OrderItem]
    subtotal: float
    delivery_fee: float
    service_fee: float
    total: float
    delivery_address: DeliveryAddress
    payment_method: PaymentMethod
    discount: float = 0.0
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: OrderStatus = OrderStatus.PENDING
    driver_id: Optional[str] = None
    notes: Optional[str] = None
    promo_code: Optional[str] = None
    scheduled_at: Optional[float] = None
    confirmed_at: Optional[float] = None
    preparing_at: Optional[float] = None
    ready_at: Optional[float] = None
    picked_up_at: Optional[float] = None
    on_the_way_at: Optional[float] = None
    delivered_at: Optional[float] = None
    completed_at: Optional[float] = None
    cancelled_at: Optional[float] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    driver_cancel_reason: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    paid_at: Optional[float] = None
    payment_transaction_id: Optional[str] = None
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)


@dataclass
class PromoRecord(_Record):
    promo_id: str
    code: str
    type: PromoType
    value: float
    valid_from: float
    valid_to: float
    title: str = ""
    description: str = ""
    max_discount: Optional[float] = None
    min_order: Optional[float] = None
    is_active: bool = True
    usage_limit: Optional[int] = None
    used_count: int = 0
    applicable_services: List[ServiceType] = field(default_factory=list)
    merchant_id: Optional[str] = None
    image: Optional[str] = None
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)


@dataclass
class TransactionRecord(_Record):
    transaction_id: str
    user_id: str
    type: TransactionType
    amount: float
    balance: float
    description: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    reference: Optional[str] = None
    reference_type: Optional[str] = None  # ride | order
    payment_method: Optional[str] = None
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)


@dataclass
class NotificationRecord(_Record):
    notification_id: str
    user_id: str
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    read: bool = False
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)


@dataclass
class ChatRecord(_Record):
    """Conversation between a booking's customer and its driver."""

    chat_id: str
    type: ChatType
    reference_id: str  # ride_id or order_id
    customer_id: str
    driver_id: str
    participant_names: Dict[str, str] = field(default_factory=dict)
    unread_count: Dict[str, int] = field(default_factory=dict)
    last_message: Optional[str] = None
    last_message_at: Optional[float] = None
    status: ChatStatus = ChatStatus.ACTIVE
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)

    @property
    def participants(self) -> tuple[str, str]:
        return self.customer_id, self.driver_id


@dataclass
class ChatMessageRecord(_Record):
    message_id: str
    chat_id: str
    sender_id: str
    sender_type: UserRole
    message: str
    message_type: MessageType = MessageType.TEXT
    image_url: Optional[str] = None
    location: Optional[GeoPoint] = None
    read: bool = False
    version: int = 1
    created_at: float = field(default_factory=now_ts)
    updated_at: float = field(default_factory=now_ts)
