from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, conint


class SubscriptionCheckoutReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    creator_id: str = Field(validation_alias=AliasChoices("creator_id", "creatorId"))
    tier: str


class ServiceCheckoutReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    creator_id: str = Field(validation_alias=AliasChoices("creator_id", "creatorId"))
    service_product_id: str = Field(validation_alias=AliasChoices("service_product_id", "serviceProductId"))


class TipCheckoutReq(BaseModel):
    # the embedded tip checkout is reachable without a session; userId travels in the body
    model_config = ConfigDict(populate_by_name=True)
    amount: int
    creator_id: str = Field(validation_alias=AliasChoices("creator_id", "creatorId"))
    creator_username: str = Field("", validation_alias=AliasChoices("creator_username", "creatorUsername"))
    post_id: Optional[str] = Field(None, validation_alias=AliasChoices("post_id", "postId"))
    message: Optional[str] = Field(None, max_length=500)
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("user_id", "userId"))


class TipPaymentIntentReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    # range is enforced by the service so the error message stays in one place
    amount: Decimal
    creator_id: str = Field(validation_alias=AliasChoices("creator_id", "creatorId"))
    creator_username: str = Field("", validation_alias=AliasChoices("creator_username", "creatorUsername"))
    post_id: Optional[str] = Field(None, validation_alias=AliasChoices("post_id", "postId"))
    message: Optional[str] = Field(None, max_length=500)


class VerifyCheckoutReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    session_id: str = Field(validation_alias=AliasChoices("session_id", "sessionId"))


class JoinNetworkReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    referral_code: str = Field(validation_alias=AliasChoices("referral_code", "referralCode", "code"))


class NotificationRef(BaseModel):
    notification_id: str = Field(validation_alias=AliasChoices("notification_id", "notificationId", "sk"))


class CreateStoryReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    image_key: str = Field(validation_alias=AliasChoices("image_key", "imageKey"))
    video_key: Optional[str] = Field(None, validation_alias=AliasChoices("video_key", "videoKey"))
    caption: str = Field("", max_length=300)
    duration_hours: conint(gt=0) = Field(24, validation_alias=AliasChoices("duration_hours", "durationHours"))


class ViewStoryReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    story_id: str = Field(validation_alias=AliasChoices("story_id", "storyId", "sk"))


class CreatePostReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    content: str = Field("", max_length=5000)
    required_level: str = Field("bronze", validation_alias=AliasChoices("required_level", "requiredLevel"))
    media_keys: List[str] = Field(default_factory=list, validation_alias=AliasChoices("media_keys", "mediaKeys"))
