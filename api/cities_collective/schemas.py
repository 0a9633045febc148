from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# BASE SCHEMAS
# ============================================================================


class ApiModel(BaseModel):
    """Base schema: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    error: str


class SuccessResponse(ApiModel):
    success: bool = True
    message: str | None = None


T = TypeVar("T")


class Page(ApiModel, Generic[T]):
    """Generic offset-paginated response."""

    items: list[T]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


# ============================================================================
# HEALTH
# ============================================================================


class DatabaseHealth(ApiModel):
    status: Literal["connected", "disconnected"]
    response_time_ms: float | None = None


class HealthResponse(ApiModel):
    status: Literal["healthy", "unhealthy"]
    timestamp: datetime
    database: DatabaseHealth
    uptime_s: float | None = None


# ============================================================================
# USER SCHEMAS
# ============================================================================


class UserPublic(ApiModel):
    """Public user profile."""

    id: int
    username: str | None = None
    name: str | None = None
    avatar: str | None = None
    pdx_username: str | None = None
    discord_username: str | None = None
    social_links: dict[str, Any] = Field(default_factory=dict)
    is_content_creator: bool = False
    created_at: datetime | None = None


class UserFull(UserPublic):
    """Profile of the signed-in user or as seen by an admin."""

    email: str
    is_admin: bool = False
    hof_creator_id: str | None = None
    cookie_consent: dict[str, Any] | None = None


class UserWithStats(UserFull):
    city_count: int = 0
    comment_count: int = 0
    follower_count: int = 0


class UserProfile(ApiModel):
    user: UserPublic
    cities: list["CitySummary"]
    follower_count: int
    following_count: int
    is_following: bool = False


class ProfileUpdate(ApiModel):
    username: str | None = Field(None, min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str | None = Field(None, max_length=100)
    avatar: str | None = Field(None, max_length=500)
    pdx_username: str | None = Field(None, max_length=50)
    discord_username: str | None = Field(None, max_length=50)


class SocialLinksUpdate(ApiModel):
    social_links: dict[str, str]


class CookieConsentUpdate(ApiModel):
    consent: dict[str, bool]


class HofCreatorIdUpdate(ApiModel):
    hof_creator_id: str | None = Field(None, max_length=255)


class RegisterRequest(ApiModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    username: str | None = Field(None, min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str | None = Field(None, max_length=100)


class LoginRequest(ApiModel):
    identifier: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class TokenResponse(ApiModel):
    access_token: str
    token_type: str = "bearer"
    user: UserFull


class PasswordResetRequest(ApiModel):
    email: str = Field(..., min_length=3, max_length=255)


class PasswordResetConfirm(ApiModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class OAuthSignInRequest(ApiModel):
    """Identity the web front end received from Google or GitHub."""

    provider: Literal["google", "github"]
    provider_id: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=100)
    avatar: str | None = Field(None, max_length=500)


class ToggleAdminRequest(ApiModel):
    is_admin: bool


class ToggleContentCreatorRequest(ApiModel):
    is_content_creator: bool


# ============================================================================
# CITY SCHEMAS
# ============================================================================


class ImageVariants(ApiModel):
    """URLs or storage paths of the four size variants of one image."""

    id: int | str | None = None
    source: Literal["upload", "hall_of_fame"] = "upload"
    thumbnail: str | None = None
    medium: str | None = None
    large: str | None = None
    original: str | None = None


class CitySummary(ApiModel):
    """City as shown in listings and search results."""

    id: int
    user_id: int | None = None
    city_name: str | None = None
    map_name: str | None = None
    population: int | None = None
    money: int | None = None
    xp: int | None = None
    theme: str | None = None
    game_mode: str | None = None
    downloadable: bool = True
    uploaded_at: datetime | None = None
    mods_enabled: list[str] = Field(default_factory=list)

    author_username: str | None = None
    author_name: str | None = None
    author_is_content_creator: bool = False

    like_count: int = 0
    comment_count: int = 0
    image_count: int = 0
    primary_image: ImageVariants | None = None


class CityImageOut(ApiModel):
    id: int
    city_id: int
    file_name: str | None = None
    original_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    width: int | None = None
    height: int | None = None
    thumbnail_path: str | None = None
    medium_path: str | None = None
    large_path: str | None = None
    original_path: str | None = None
    is_primary: bool = False
    sort_order: int | None = None
    uploaded_at: datetime | None = None


class CityImageCreate(ApiModel):
    file_name: str | None = None
    original_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    width: int | None = None
    height: int | None = None
    thumbnail_path: str
    medium_path: str
    large_path: str
    original_path: str


class HallOfFameImageOut(ApiModel):
    id: int
    user_id: int | None = None
    city_id: int | None = None
    hof_image_id: str
    city_name: str
    city_population: int | None = None
    city_milestone: int | None = None
    image_url_thumbnail: str
    image_url_fhd: str
    image_url_4k: str
    is_primary: bool = False
    created_at: datetime | None = None
    last_updated: datetime | None = None


class CityDetail(CitySummary):
    """Full city record with configuration, images and social counters."""

    preview: str | None = None
    save_game_data: str | None = None
    session_guid: str | None = None
    auto_save: bool | None = None
    left_hand_traffic: bool | None = None
    natural_disasters: bool | None = None
    unlock_all: bool | None = None
    unlimited_money: bool | None = None
    unlock_map_tiles: bool | None = None
    simulation_date: dict[str, Any] | None = None
    content_prerequisites: list[str] = Field(default_factory=list)
    file_name: str | None = None
    description: str | None = None
    download_count: int = 0
    view_count: int = 0
    updated_at: datetime | None = None
    favorite_count: int = 0

    images: list[CityImageOut] = Field(default_factory=list)
    hall_of_fame_images: list[HallOfFameImageOut] = Field(default_factory=list)


class CityCreate(ApiModel):
    """Metadata for a processed save-game upload."""

    city_name: str | None = Field(None, max_length=255)
    map_name: str | None = Field(None, max_length=255)
    population: int | None = Field(None, ge=0)
    money: int | None = None
    xp: int | None = Field(None, ge=0)
    theme: str | None = Field(None, max_length=100)
    game_mode: str | None = Field(None, max_length=50)
    preview: str | None = None
    save_game_data: str | None = None
    session_guid: str | None = None
    auto_save: bool | None = None
    left_hand_traffic: bool | None = None
    natural_disasters: bool | None = None
    unlock_all: bool | None = None
    unlimited_money: bool | None = None
    unlock_map_tiles: bool | None = None
    simulation_date: dict[str, Any] | None = None
    content_prerequisites: list[str] = Field(default_factory=list)
    mods_enabled: list[str] = Field(default_factory=list)
    file_name: str | None = None
    file_path: str | None = None
    description: str | None = Field(None, max_length=5000)
    downloadable: bool = True


class DescriptionUpdate(ApiModel):
    description: str | None = Field(None, max_length=5000)


class DownloadableUpdate(ApiModel):
    downloadable: bool


class CityNameUpdate(ApiModel):
    city_name: str = Field(..., min_length=1, max_length=255)


class ImageReorderRequest(ApiModel):
    image_ids: list[int] = Field(..., min_length=1)


class SetPrimaryRequest(ApiModel):
    city_id: int


class AssignCityRequest(ApiModel):
    city_id: int | None = None


class CommunityStats(ApiModel):
    total_cities: int
    total_users: int
    total_likes: int
    total_comments: int
    total_downloads: int
    total_views: int


class FilterOptions(ApiModel):
    themes: list[str]
    game_modes: list[str]
    content_creators: list[str]
    sort_options: list[str]


class SearchResults(ApiModel):
    cities: list[CitySummary]
    total: int
    limit: int
    offset: int
    has_more: bool


# ============================================================================
# SOCIAL
# ============================================================================


class LikeStatus(ApiModel):
    liked: bool
    like_count: int


class FavoriteStatus(ApiModel):
    favorited: bool


class FollowStatus(ApiModel):
    following: bool
    follower_count: int
    following_count: int


class CommentOut(ApiModel):
    id: int
    city_id: int
    user_id: int | None = None
    content: str
    created_at: datetime
    updated_at: datetime | None = None
    username: str | None = None
    user_name: str | None = None
    avatar: str | None = None
    like_count: int = 0
    is_liked_by_user: bool = False


class AdminCommentOut(CommentOut):
    city_name: str | None = None
    email: str | None = None


class CommentCreate(ApiModel):
    content: str = Field(..., max_length=5000)
    tagged_usernames: list[str] = Field(default_factory=list)


class CommentCreated(ApiModel):
    comment: CommentOut
    moderated: bool = False
    moderation_message: str | None = None


class CityCounter(ApiModel):
    count: int


class CommentLikeStatus(ApiModel):
    liked: bool
    like_count: int


class CommentCount(ApiModel):
    count: int


ImageType = Literal["screenshot", "hall_of_fame"]


class ImageCommentOut(ApiModel):
    id: int
    image_id: int
    image_type: ImageType
    city_id: int | None = None
    user_id: int | None = None
    content: str
    created_at: datetime
    updated_at: datetime | None = None
    username: str | None = None
    user_name: str | None = None
    avatar: str | None = None
    like_count: int = 0
    is_liked_by_user: bool = False


class ImageCommentCreate(ApiModel):
    content: str = Field(..., max_length=1000)
    tagged_usernames: list[str] = Field(default_factory=list)


class ImageCommentCreated(ApiModel):
    comment: ImageCommentOut
    moderated: bool = False
    moderation_message: str | None = None


class ImageLikeInfo(ApiModel):
    like_count: int
    is_liked: bool


class ImageViewStatus(ApiModel):
    viewed: bool
    view_count: int



# ============================================================================
# NOTIFICATIONS
# ============================================================================


class NotificationOut(ApiModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    related_user_id: int | None = None
    related_city_id: int | None = None
    related_comment_id: int | None = None
    is_read: bool = False
    created_at: datetime


class NotificationList(ApiModel):
    notifications: list[NotificationOut]
    unread_count: int


# ============================================================================
# ADMINISTRATION
# ============================================================================


class ApiKeyOut(ApiModel):
    """API key with the secret masked."""

    id: int
    user_id: int
    name: str
    key: str
    is_active: bool
    last_used: datetime | None = None
    created_at: datetime | None = None
    username: str | None = None
    email: str | None = None


class ApiKeyCreate(ApiModel):
    user_id: int
    name: str = Field(..., min_length=1, max_length=255)


class ApiKeyCreated(ApiKeyOut):
    """Returned once at creation; ``key`` holds the plaintext secret."""


class AdminCheck(ApiModel):
    is_admin: bool


class AuditLogOut(ApiModel):
    id: int
    actor_id: int
    action: str
    target_type: str | None = None
    target_id: str | None = None
    note: str | None = None
    created_at: datetime


class ModerationSettingsUpdate(ApiModel):
    profanity_list: list[str] | None = None
    spam_indicators: list[str] | None = None


class CacheStats(ApiModel):
    enabled: bool
    hits: int
    misses: int
    hit_rate: float
    keys: int | None = None


class FixPrimaryImagesResult(ApiModel):
    duplicates_fixed: int
    primaries_assigned: int


class HallOfFameRefreshResult(ApiModel):
    users_processed: int
    images_upserted: int
    errors: int


# ============================================================================
# V1 (HoF Creator API)
# ============================================================================


class V1UserRef(ApiModel):
    id: int
    username: str | None = None
    name: str | None = None


class V1CityStats(ApiModel):
    likes: int
    comments: int
    total_images: int | None = None


class V1City(ApiModel):
    id: int
    city_name: str | None = None
    map_name: str | None = None
    population: int | None = None
    money: int | None = None
    xp: int | None = None
    theme: str | None = None
    game_mode: str | None = None
    downloadable: bool = True
    download_url: str | None = None
    uploaded_at: datetime | None = None
    primary_image: ImageVariants | None = None
    stats: V1CityStats
    user: V1UserRef | None = None


class V1CityDetail(V1City):
    auto_save: bool | None = None
    left_hand_traffic: bool | None = None
    natural_disasters: bool | None = None
    unlock_all: bool | None = None
    unlimited_money: bool | None = None
    unlock_map_tiles: bool | None = None
    simulation_date: dict[str, Any] | None = None
    content_prerequisites: list[str] = Field(default_factory=list)
    mods_enabled: list[str] = Field(default_factory=list)
    file_name: str | None = None
    description: str | None = None
    updated_at: datetime | None = None
    images: list[CityImageOut] = Field(default_factory=list)


class V1CitiesData(ApiModel):
    user: V1UserRef
    cities: list[V1City]
    total: int


class V1Envelope(ApiModel, Generic[T]):
    success: bool = True
    data: T


class V1HofCreatorInfo(ApiModel):
    success: bool = True
    hof_creator_id: str
    username: str
    api_key_name: str
    message: str = "HoF Creator ID retrieved successfully"


class V1CityRef(ApiModel):
    id: int
    name: str | None = None


class V1CreatorUser(ApiModel):
    id: int
    username: str | None = None
    hof_creator_id: str
    cities: list[V1CityRef]


class V1CreatorLookup(ApiModel):
    success: bool = True
    user: V1CreatorUser


class V1CreatorCity(ApiModel):
    id: int
    city_name: str | None = None
    map_name: str | None = None
    population: int | None = None
    money: int | None = None
    xp: int | None = None
    theme: str | None = None
    game_mode: str | None = None
    simulation_date: dict[str, Any] | None = None
    description: str | None = None
    downloadable: bool = True
    uploaded_at: datetime | None = None
    image_count: int
    images: list[CityImageOut]


class V1CreatorCityResponse(ApiModel):
    success: bool = True
    city: V1CreatorCity
    message: str = "City information retrieved successfully"


class V1ImagesCreate(ApiModel):
    images: list[CityImageCreate] = Field(..., min_length=1, max_length=15)


class V1ImagesAdded(ApiModel):
    success: bool = True
    images: list[CityImageOut]


UserProfile.model_rebuild()
