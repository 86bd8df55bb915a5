from typing import Literal, Optional

from pydantic import BaseModel, Field


RequestStatus = Literal["pending", "accepted", "rejected"]
UserType = Literal["customer", "provider", "admin"]
ChatSender = Literal["customer", "provider"]


class Session(BaseModel):
    user_id: str
    display_name: str = ""
    user_type: UserType = "customer"
    # Granted by configuration on top of the account type.
    admin: bool = False

    @property
    def is_provider(self) -> bool:
        return self.user_type == "provider"

    @property
    def is_admin(self) -> bool:
        return self.admin or self.user_type == "admin"


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ProviderLocation(BaseModel):
    city: str = ""
    area: str = ""
    coordinates: Optional[Coordinates] = None


class ContactInfo(BaseModel):
    phone: str = ""
    email: str = ""
    whatsapp: str = ""


class Provider(BaseModel):
    id: str
    user_id: str
    name: str
    bio: str = ""
    skills: list[str] = Field(default_factory=list)
    location: ProviderLocation = Field(default_factory=ProviderLocation)
    pricing: str = ""
    availability: str = ""
    contact_info: Optional[ContactInfo] = None
    image_url: Optional[str] = None
    rating: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProviderProfileSaveRequest(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    skills: Optional[list[str]] = None
    location: Optional[ProviderLocation] = None
    pricing: Optional[str] = None
    availability: Optional[str] = None
    contact_info: Optional[ContactInfo] = None
    image_url: Optional[str] = None


class ServiceCard(BaseModel):
    id: str
    provider_id: str
    title: str
    description: str
    image: Optional[str] = None
    created_at: Optional[str] = None


class ServiceCardCreateRequest(BaseModel):
    title: str
    description: str
    image: Optional[str] = None


class Review(BaseModel):
    id: str
    provider_id: str
    author_id: str
    author_name: str
    text: str
    created_at: str


class ReviewCreateRequest(BaseModel):
    text: str


class ContactRequest(BaseModel):
    id: str
    user_id: str
    user_name: str = ""
    provider_id: str
    provider_name: str = ""
    message: str = ""
    status: RequestStatus
    created_at: str
    updated_at: str


class ContactRequestCreate(BaseModel):
    provider_id: str
    message: str = ""


class CustomerRequestView(BaseModel):
    request: ContactRequest
    status_message: str
    contact_info: Optional[ContactInfo] = None
    chat_enabled: bool = False


class ProviderRequestQueue(BaseModel):
    requests: list[ContactRequest]
    counts: dict[str, int]


class ChatMessage(BaseModel):
    sender: ChatSender
    text: str
    time: str


class ChatSendRequest(BaseModel):
    text: str


class ChatConversation(BaseModel):
    request_id: Optional[str] = None
    messages: list[ChatMessage]


class ProviderDetails(BaseModel):
    provider: Provider
    cards: list[ServiceCard]
    reviews: list[Review]
    contact_status: Literal["self", "accepted", "pending", "rejected", "none"] = "none"
    chat_enabled: bool = False


class ProviderDashboard(BaseModel):
    provider: Optional[Provider] = None
    requests: list[ContactRequest]
    counts: dict[str, int]
    cards: list[ServiceCard]
    profile_views: int = 0


class Catalog(BaseModel):
    skills: list[str]
    cities: list[str]
    availability_options: list[str]
    live_location_radius_km: float


class AuthSignupRequest(BaseModel):
    email: str
    display_name: str
    password: str
    confirm_password: str
    user_type: Literal["customer", "provider"] = "customer"


class AuthLoginRequest(BaseModel):
    email: str
    password: str


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    user_id: str
    display_name: str
    user_type: UserType
    admin: bool = False
    expires_at: str


class AuthMeResponse(BaseModel):
    user_id: str
    display_name: str
    user_type: UserType
    admin: bool = False


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    title: str
    body: str
    category: Literal["request", "message", "moderation", "system"] = "system"
    read: bool = False
    created_at: str
    deep_link: Optional[str] = None
