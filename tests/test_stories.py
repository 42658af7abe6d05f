from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from fastapi import HTTPException

from deluxe.core.errors import NotFoundError
from deluxe.core.time import HOUR
from deluxe.routers import cron as cron_router
from deluxe.services import stories


@pytest.fixture
def clock(monkeypatch):
    state = {"now": 1_000_000}
    monkeypatch.setattr(stories, "now_ts", lambda: state["now"])
    return state


@pytest.fixture
def s3_mock(monkeypatch, settings):
    settings(media_bucket="media-bucket")
    mock = MagicMock()
    monkeypatch.setattr(stories, "s3", mock)
    return mock


def test_24h_story_present_at_23h_and_gone_at_25h(tables, clock, s3_mock):
    story = stories.create_temporary_story("c1", "stories/c1/a.jpg", duration_hours=24)
    start = clock["now"]

    clock["now"] = start + 23 * HOUR
    assert stories.delete_expired_stories() == 0
    stories.clear_stories_cache()
    assert [s["story_id"] for s in stories.get_creator_active_stories("c1")] == [story["story_id"]]

    clock["now"] = start + 25 * HOUR
    assert stories.delete_expired_stories() == 1
    assert stories.get_creator_active_stories("c1") == []
    s3_mock.delete_object.assert_called_once_with(Bucket="media-bucket", Key="stories/c1/a.jpg")


def test_cleanup_deletes_video_too_and_keeps_live_stories(tables, clock, s3_mock):
    stories.create_temporary_story("c1", "a.jpg", video_key="a.mp4", duration_hours=24)
    stories.create_temporary_story("c1", "b.jpg", duration_hours=168)
    assert stories.delete_expired_stories(now=clock["now"] + 48 * HOUR) == 1
    keys = sorted(call.kwargs["Key"] for call in s3_mock.delete_object.call_args_list)
    assert keys == ["a.jpg", "a.mp4"]
    assert len(tables.stories.items) == 1


def test_media_failure_does_not_block_record_delete(tables, clock, s3_mock):
    s3_mock.delete_object.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "DeleteObject")
    stories.create_temporary_story("c1", "a.jpg")
    assert stories.delete_expired_stories(now=clock["now"] + 25 * HOUR) == 1
    assert not tables.stories.items


def test_invalid_duration_rejected(tables):
    with pytest.raises(ValueError):
        stories.create_temporary_story("c1", "a.jpg", duration_hours=12)


def test_active_stories_newest_first_capped(tables, clock):
    for i in range(12):
        clock["now"] += 60
        stories.create_temporary_story("c1", f"{i}.jpg")
    active = stories.get_creator_active_stories("c1")
    assert len(active) == stories.MAX_ACTIVE_STORIES
    assert active[0]["image_key"] == "11.jpg"
    assert stories.has_active_stories("c1")


def test_views_counted_once_per_user(tables, clock):
    story = stories.create_temporary_story("c1", "a.jpg")
    assert stories.has_unviewed_stories("c1", "u1")
    assert stories.mark_story_viewed("c1", story["sk"], "u1")
    assert not stories.mark_story_viewed("c1", story["sk"], "u1")
    stored = tables.stories.items[("CREATOR#c1", story["sk"])]
    assert stored["views"] == 1
    assert stored["viewed_by"] == ["u1"]
    assert not stories.has_unviewed_stories("c1", "u1")
    with pytest.raises(NotFoundError):
        stories.mark_story_viewed("c1", "STORY#missing", "u1")


def test_stale_cache_entries_are_dropped(tables, clock, settings):
    stories.get_creator_active_stories("c1")
    stories.get_creator_active_stories("c2")
    assert set(stories._STORIES_CACHE) == {"c1", "c2"}

    settings(stories_cache_seconds=0)
    stories.get_creator_active_stories("c3")

    assert set(stories._STORIES_CACHE) == {"c3"}

def test_delete_story_removes_media(tables, clock, s3_mock):
    story = stories.create_temporary_story("c1", "a.jpg")
    stories.delete_temporary_story("c1", story["sk"])
    assert not tables.stories.items
    s3_mock.delete_object.assert_called_once()


def test_cron_requires_secret_when_configured(tables, settings, build_request, run):
    settings(cron_secret="s3cret")
    with pytest.raises(HTTPException) as exc:
        run(cron_router.cleanup_expired_stories(build_request(method="GET")))
    assert exc.value.status_code == 401

    req = build_request(method="GET", headers={"Authorization": "Bearer s3cret"})
    assert run(cron_router.cleanup_expired_stories(req)) == {
        "success": True,
        "message": "Cleaned up 0 expired stories",
        "deletedCount": 0,
    }


def test_cron_failure_is_500(tables, settings, build_request, run, monkeypatch):
    settings(cron_secret="")

    def boom():
        raise RuntimeError("scan failed")

    monkeypatch.setattr(cron_router, "delete_expired_stories", boom)
    with pytest.raises(HTTPException) as exc:
        run(cron_router.cleanup_expired_stories(build_request(method="GET")))
    assert exc.value.status_code == 500
