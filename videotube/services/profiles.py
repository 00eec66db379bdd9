"""Read-side aggregations over users, subscriptions and videos."""

from __future__ import annotations

from fastapi import status
from sqlalchemy import exists, false, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from videotube.core.errors import ApiError
from videotube.db.models import Subscription, User, Video, WatchHistoryEntry
from videotube.schema.profile import ChannelProfile, VideoOwner, WatchHistoryVideo


async def get_channel_profile(session: AsyncSession, username: str | None, *, viewer_id: int | None) -> ChannelProfile:
    """Load a channel with its subscriber counters as seen by ``viewer_id``."""

    if not username or not username.strip():
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Username is missing")

    subscribers_count = (
        select(func.count(Subscription.id)).where(Subscription.channel_id == User.id).scalar_subquery()
    )
    subscribed_to_count = (
        select(func.count(Subscription.id)).where(Subscription.subscriber_id == User.id).scalar_subquery()
    )
    if viewer_id is None:
        is_subscribed = false()
    else:
        is_subscribed = exists().where(Subscription.channel_id == User.id, Subscription.subscriber_id == viewer_id)

    stmt = select(
        User,
        subscribers_count.label("subscribers_count"),
        subscribed_to_count.label("channels_subscribed_to_count"),
        is_subscribed.label("is_subscribed"),
    ).where(User.username == username.strip().lower())

    row = (await session.execute(stmt)).first()
    if row is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Channel does not exist")

    channel, subscribers, subscribed_to, subscribed = row
    return ChannelProfile(
        id=channel.id,
        full_name=channel.full_name,
        username=channel.username,
        email=channel.email,
        avatar=channel.avatar,
        cover_image=channel.cover_image,
        subscribers_count=subscribers or 0,
        channels_subscribed_to_count=subscribed_to or 0,
        is_subscribed=bool(subscribed),
    )


def _map_video(video: Video) -> WatchHistoryVideo:
    owner = None
    if video.owner is not None:
        owner = VideoOwner(
            full_name=video.owner.full_name,
            username=video.owner.username,
            avatar=video.owner.avatar,
        )
    return WatchHistoryVideo(
        id=video.id,
        video_file=video.video_file,
        thumbnail=video.thumbnail,
        title=video.title,
        description=video.description,
        duration=video.duration,
        views=video.views,
        is_published=video.is_published,
        owner=owner,
        created_at=video.created_at,
    )


async def get_watch_history(session: AsyncSession, user_id: int) -> list[WatchHistoryVideo]:
    """Return the user's watched videos in history order with their owners."""

    if await session.get(User, user_id) is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "User does not exist")

    stmt = (
        select(Video)
        .join(WatchHistoryEntry, WatchHistoryEntry.video_id == Video.id)
        .options(joinedload(Video.owner))
        .where(WatchHistoryEntry.user_id == user_id)
        .order_by(WatchHistoryEntry.position)
    )
    videos = (await session.scalars(stmt)).all()
    return [_map_video(video) for video in videos]
