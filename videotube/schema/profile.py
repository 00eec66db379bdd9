"""Pydantic schemas for the channel profile and watch history reads."""

from __future__ import annotations

from datetime import datetime

from videotube.schema.envelope import CamelModel


class ChannelProfile(CamelModel):
    """A user seen as a channel, with subscription counters for the viewer."""

    id: int
    full_name: str
    username: str
    email: str
    avatar: str
    cover_image: str = ""
    subscribers_count: int
    channels_subscribed_to_count: int
    is_subscribed: bool


class VideoOwner(CamelModel):
    full_name: str
    username: str
    avatar: str


class WatchHistoryVideo(CamelModel):
    id: int
    video_file: str
    thumbnail: str
    title: str
    description: str
    duration: float
    views: int
    is_published: bool
    owner: VideoOwner | None = None
    created_at: datetime
