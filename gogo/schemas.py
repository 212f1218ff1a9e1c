"""
Pydantic schemas for the HTTP API.

Requests are typed; responses wrap stored documents as plain dicts, the same
shape the apps read from the document database.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from gogo.types import (
    AccountStatus,
    ApplicationStatus,
    MerchantStatus,
    MerchantType,
    MessageType,
    PaymentMethod,
    PromoType,
    RideStatus,
    ServiceType,
    VehicleType,
)


class GeoPointModel(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class PlaceModel(BaseModel):
    address: str = Field(..., max_length=500)
    coordinates: GeoPointModel
    details: Optional[str] = None


class RouteModel(BaseModel):
    distance: float = Field(..., ge=0)
    duration: float = Field(..., ge=0)
    polyline: str = ""


# Users -----------------------------------------------------------------------


class ProfileCreateRequest(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    referral_code: Optional[str] = None


class NotificationSettingsModel(BaseModel):
    push: bool = True
    email: bool = True
    sms: bool = True
    promotions: bool = True


class UserSettingsModel(BaseModel):
    notifications: NotificationSettingsModel = Field(
        default_factory=NotificationSettingsModel
    )
    language: str = "en"
    currency: str = "PHP"


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = None
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    settings: Optional[UserSettingsModel] = None


class RoleRequest(BaseModel):
    role: str


class PushTokenRequest(BaseModel):
    token: Optional[str] = None


class AddressRequest(BaseModel):
    label: str = Field(..., max_length=100)
    address: str = Field(..., max_length=500)
    coordinates: GeoPointModel
    type: Literal["home", "work", "other"] = "other"
    details: Optional[str] = None


class AddressUpdateRequest(BaseModel):
    label: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    coordinates: Optional[GeoPointModel] = None
    type: Optional[Literal["home", "work", "other"]] = None
    details: Optional[str] = None


class UserResponse(BaseModel):
    user: dict
    created: bool = False


class AddressListResponse(BaseModel):
    addresses: list[dict]


class AddressResponse(BaseModel):
    address: dict


class FavoritesResponse(BaseModel):
    favorite_merchants: list[str]


# Drivers ---------------------------------------------------------------------


class VehicleModel(BaseModel):
    make: str
    model: str
    year: int = Field(..., ge=1980, le=2100)
    color: str
    plate_number: str = Field(..., max_length=20)
    registration_expiry: Optional[float] = None


class LicenseModel(BaseModel):
    number: str = Field(..., max_length=40)
    expiry: Optional[float] = None
    type: str = "professional"
    front_image: Optional[str] = None
    back_image: Optional[str] = None


class DriverApplicationRequest(BaseModel):
    vehicle_type: VehicleType
    vehicle: VehicleModel
    license: LicenseModel
    phone: Optional[str] = None
    documents: dict[str, str] = Field(default_factory=dict)


class GoOnlineRequest(BaseModel):
    location: Optional[GeoPointModel] = None


class LocationRequest(BaseModel):
    latitude: float
    longitude: float


class DriverResponse(BaseModel):
    driver: dict


class DriverStatsResponse(BaseModel):
    stats: dict


# Rides -----------------------------------------------------------------------


class RideQuoteRequest(BaseModel):
    pickup: GeoPointModel
    dropoff: GeoPointModel
    vehicle_type: VehicleType
    route: Optional[RouteModel] = None
    promo_code: Optional[str] = None


class RideBookRequest(BaseModel):
    pickup: PlaceModel
    dropoff: PlaceModel
    vehicle_type: VehicleType
    payment_method: PaymentMethod
    route: Optional[RouteModel] = None
    promo_code: Optional[str] = None
    scheduled_at: Optional[float] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RatingRequest(BaseModel):
    rating: int
    review: Optional[str] = Field(None, max_length=1000)


class RideStatusRequest(BaseModel):
    status: RideStatus


class QuoteResponse(BaseModel):
    quote: dict


class VehicleTypesResponse(BaseModel):
    vehicle_types: list[dict]


class RideResponse(BaseModel):
    ride: Optional[dict] = None


class RideListResponse(BaseModel):
    rides: list[dict]


class RideRequestsResponse(BaseModel):
    requests: list[dict]


class WatchResponse(BaseModel):
    changed: bool
    version: int
    document: dict


class AssignedDriverResponse(BaseModel):
    driver: dict
    status: str
    changed: Optional[bool] = None


# Orders ----------------------------------------------------------------------


class CartItemModel(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1, le=99)
    options: dict[str, str | list[str]] = Field(default_factory=dict)
    addons: list[str] = Field(default_factory=list)
    special_instructions: Optional[str] = Field(None, max_length=500)


class OrderQuoteRequest(BaseModel):
    merchant_id: str
    items: list[CartItemModel]
    promo_code: Optional[str] = None


class OrderPlaceRequest(BaseModel):
    merchant_id: str
    items: list[CartItemModel]
    address: str = Field(..., max_length=500)
    coordinates: GeoPointModel
    payment_method: PaymentMethod
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    address_details: Optional[str] = None
    promo_code: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)
    scheduled_at: Optional[float] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class OrderResponse(BaseModel):
    order: Optional[dict] = None


class OrderListResponse(BaseModel):
    orders: list[dict]


class CountResponse(BaseModel):
    count: int


# Merchants -------------------------------------------------------------------


class OperatingHoursModel(BaseModel):
    day: int = Field(..., ge=0, le=6)
    open: str
    close: str
    is_closed: bool = False


class ProductChoiceModel(BaseModel):
    name: str
    price: float = 0.0


class ProductOptionModel(BaseModel):
    name: str
    choices: list[ProductChoiceModel]
    required: bool = False
    max_select: int = Field(1, ge=1)


class ProductAddonModel(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    is_available: bool = True


class MerchantApplicationRequest(BaseModel):
    name: str = Field(..., max_length=200)
    type: MerchantType
    address: str
    coordinates: GeoPointModel
    phone: str
    email: str = ""
    description: str = ""
    categories: list[str] = Field(default_factory=list)
    delivery_fee: Optional[float] = Field(None, ge=0)
    min_order: float = Field(0.0, ge=0)


class StoreUpdateRequest(BaseModel):
    is_open: Optional[bool] = None
    name: Optional[str] = None
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    coordinates: Optional[GeoPointModel] = None
    logo: Optional[str] = None
    cover_image: Optional[str] = None
    categories: Optional[list[str]] = None
    operating_hours: Optional[list[OperatingHoursModel]] = None
    delivery_fee: Optional[float] = None
    min_order: Optional[float] = None
    estimated_delivery: Optional[str] = None


class ProductRequest(BaseModel):
    name: str = Field(..., max_length=200)
    price: float
    category: str
    description: str = ""
    sale_price: Optional[float] = None
    image: str = ""
    subcategory: Optional[str] = None
    options: list[ProductOptionModel] = Field(default_factory=list)
    addons: list[ProductAddonModel] = Field(default_factory=list)
    is_available: bool = True
    is_featured: bool = False
    preparation_time: Optional[int] = None
    tags: list[str] = Field(default_factory=list)


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    description: Optional[str] = None
    sale_price: Optional[float] = None
    image: Optional[str] = None
    subcategory: Optional[str] = None
    options: Optional[list[ProductOptionModel]] = None
    addons: Optional[list[ProductAddonModel]] = None
    is_available: Optional[bool] = None
    is_featured: Optional[bool] = None
    preparation_time: Optional[int] = None
    tags: Optional[list[str]] = None


class MerchantResponse(BaseModel):
    merchant: dict


class MerchantListResponse(BaseModel):
    merchants: list[dict]


class MerchantDetailResponse(BaseModel):
    merchant: dict
    menu: dict[str, list[dict]]


class ProductResponse(BaseModel):
    product: dict


class ProductListResponse(BaseModel):
    products: list[dict]


class StatsResponse(BaseModel):
    stats: dict


# Wallet ----------------------------------------------------------------------


class TopUpRequest(BaseModel):
    amount: float
    method: Literal["gcash", "card", "maya", "bank"] = "gcash"


class TopUpResponse(BaseModel):
    balance: float
    transaction_id: str


class BalanceResponse(BaseModel):
    balance: float
    currency: str


class TransactionListResponse(BaseModel):
    transactions: list[dict]


class PaymentResponse(BaseModel):
    payment: dict


# Promos ----------------------------------------------------------------------


class PromoValidateRequest(BaseModel):
    code: str
    amount: float = Field(..., ge=0)
    service: ServiceType
    delivery_fee: float = Field(0.0, ge=0)


class PromoValidateResponse(BaseModel):
    valid: bool
    discount: float
    promo_id: Optional[str] = None
    message: Optional[str] = None


class PromoCreateRequest(BaseModel):
    code: str = Field(..., max_length=32)
    type: PromoType
    value: float
    valid_from: float
    valid_to: float
    title: str = ""
    description: str = ""
    max_discount: Optional[float] = None
    min_order: Optional[float] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    applicable_services: list[ServiceType] = Field(default_factory=list)
    merchant_id: Optional[str] = None
    image: Optional[str] = None


class PromoResponse(BaseModel):
    promo: dict


class PromoListResponse(BaseModel):
    promos: list[dict]


# Notifications ---------------------------------------------------------------


class NotificationListResponse(BaseModel):
    notifications: list[dict]
    unread_count: int


# Chats -----------------------------------------------------------------------


class MessageRequest(BaseModel):
    message: str = ""
    message_type: MessageType = MessageType.TEXT
    image_url: Optional[str] = None
    location: Optional[GeoPointModel] = None


class ChatResponse(BaseModel):
    chat: dict


class ChatListResponse(BaseModel):
    chats: list[dict]
    unread_count: int


class MessageResponse(BaseModel):
    message: dict


class MessageListResponse(BaseModel):
    messages: list[dict]
    has_more: bool


# Uploads ---------------------------------------------------------------------


class UploadSignRequest(BaseModel):
    target: Literal["profile", "driver_document", "merchant_image", "product_image"]
    content_type: str
    document: Optional[str] = None
    merchant_id: Optional[str] = None
    product_id: Optional[str] = None
    image: Optional[Literal["logo", "cover"]] = None


class SignUrlResponse(BaseModel):
    url: str
    path: Optional[str] = None


# Admin -----------------------------------------------------------------------


class ReviewRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SuspendRequest(BaseModel):
    until: float
    reason: str = Field(..., min_length=1, max_length=500)


class ApplicationListResponse(BaseModel):
    status: Optional[ApplicationStatus] = None
    applications: list[dict]


class StatusResponse(BaseModel):
    status: Literal["ok"]


class AccountStatusRequest(BaseModel):
    status: AccountStatus


class MerchantStatusRequest(BaseModel):
    status: MerchantStatus


class MaintenanceResponse(BaseModel):
    released: int
    expired: int
    purged: int
