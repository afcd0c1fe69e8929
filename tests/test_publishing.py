from datetime import datetime

import pytest

from content_backend.api import publishing
from content_backend.api.content_models import BlogPost, ContentItem, Podcast, SocialPost
from content_backend.api.content_schemas import PublishRequest
from content_backend.api.integrations import getlate, podbean, wordpress
from content_backend.api.integrations.http import IntegrationError
from content_backend.api.media_embedding import PrerequisiteError

SOCIAL_ONLY = PublishRequest(publish_client_blog=False, publish_wrhq_blog=False, schedule_wrhq_social=False)
BLOG_ONLY = PublishRequest(publish_wrhq_blog=False, schedule_social=False, schedule_wrhq_social=False)


@pytest.fixture
def no_approval(monkeypatch):
    monkeypatch.setenv("PUBLISH_REQUIRE_APPROVAL", "false")


def _reload(db, item_id):
    db.expire_all()
    return db.query(ContentItem).filter(ContentItem.id == item_id).one()


def _add_social(db, item, platform, **overrides):
    values = {
        "content_item_id": item.id,
        "client_id": item.client_id,
        "platform": platform,
        "caption": f"{platform} caption",
        "hashtags": ["AutoGlass"],
        "scheduled_time": datetime(2020, 1, 1, 9, 0),
    }
    values.update(overrides)
    db.add(SocialPost(**values))
    db.commit()


def test_publish_requires_generated_blog(db, config, make_client, make_item):
    item = make_item(make_client(), status="REVIEW")

    with pytest.raises(PrerequisiteError, match="Blog must be generated before publishing"):
        publishing.run_publish(db, item.id, PublishRequest(), config=config)
    assert _reload(db, item.id).pipeline_step is None


def test_publish_requires_approval(db, config, make_client, make_item, monkeypatch):
    monkeypatch.delenv("PUBLISH_REQUIRE_APPROVAL", raising=False)
    item = make_item(make_client(), status="REVIEW", blog_generated=True)

    with pytest.raises(publishing.ApprovalRequired, match="Blog must be approved before publishing"):
        publishing.run_publish(db, item.id, BLOG_ONLY, config=config)


def test_client_blog_is_scheduled_on_wordpress(db, config, make_client, make_item, no_approval, monkeypatch):
    created = []

    def _create(**kwargs):
        created.append(kwargs)
        return {"id": 77, "link": "https://clearview.test/windshield-replacement-time/"}

    monkeypatch.setattr(wordpress, "wp_create_post", _create)
    item = make_item(make_client(), status="REVIEW", blog_generated=True)
    item_id = item.id
    db.add(
        BlogPost(
            content_item_id=item_id,
            client_id=item.client_id,
            title="Windshield Replacement Time",
            slug="windshield-replacement-time",
            content="<p>Body.</p>",
            excerpt="Short answer.",
        )
    )
    db.commit()

    result = publishing.run_publish(db, item_id, BLOG_ONLY, config=config)

    assert result == {
        "success": True,
        "results": {"client_blog": {"success": True, "url": "https://clearview.test/windshield-replacement-time/"}},
    }
    assert created[0]["post_status"] == "future"
    assert created[0]["date_gmt"] == "2030-01-15T09:00:00"
    assert "google-maps-embed" in created[0]["content"]
    item = _reload(db, item_id)
    assert item.status == "SCHEDULED"
    assert item.client_blog_published is True
    assert db.query(BlogPost).one().wordpress_post_id == 77


def test_social_scheduling_skips_missing_accounts(db, config, make_client, make_item, no_approval, monkeypatch):
    scheduled = []

    def _schedule(**kwargs):
        scheduled.append(kwargs)
        return {"post_id": "late-1", "status": "scheduled", "platform_post_url": None, "error": None}

    monkeypatch.setattr(getlate, "schedule_post", _schedule)
    item = make_item(make_client(social_account_ids={"Facebook": "fb-1"}), status="REVIEW", social_generated=True)
    item_id = item.id
    _add_social(db, item, "facebook")
    _add_social(db, item, "instagram")
    _add_social(db, item, "linkedin", status="PUBLISHED")

    result = publishing.run_publish(db, item_id, SOCIAL_ONLY, config=config)

    assert result["results"]["social"] == {"success": True, "count": 1, "skipped": ["instagram"]}
    assert len(scheduled) == 1
    assert scheduled[0]["account_id"] == "fb-1"
    assert scheduled[0]["scheduled_time"] is None
    posts = {post.platform: post for post in db.query(SocialPost).all()}
    assert posts["facebook"].status == "SCHEDULED"
    assert posts["facebook"].late_post_id == "late-1"
    assert posts["instagram"].status == "DRAFT"
    item = _reload(db, item_id)
    assert item.social_published is True
    assert item.status == "SCHEDULED"


def test_social_failure_is_recorded_on_row(db, config, make_client, make_item, no_approval, monkeypatch):
    def _schedule(**kwargs):
        raise IntegrationError("HTTP 401 from getlate")

    monkeypatch.setattr(getlate, "schedule_post", _schedule)
    item = make_item(make_client(social_account_ids={"facebook": "fb-1"}), status="REVIEW", social_generated=True)
    item_id = item.id
    _add_social(db, item, "facebook")

    result = publishing.run_publish(db, item_id, SOCIAL_ONLY, config=config)

    social = result["results"]["social"]
    assert result["success"] is False
    assert social["success"] is False
    assert social["error"] == "facebook: HTTP 401 from getlate"
    row = db.query(SocialPost).one()
    assert row.status == "FAILED"
    assert row.error_message == "HTTP 401 from getlate"
    assert _reload(db, item_id).status == "FAILED"


def test_publish_podcast_checks_readiness(db, config, make_client, make_item):
    item = make_item(make_client(), status="SCHEDULED")
    db.add(
        Podcast(
            content_item_id=item.id,
            client_id=item.client_id,
            script="<p>script</p>",
            status="PROCESSING",
            audio_url="https://cdn.test/ep.mp3",
        )
    )
    db.commit()

    with pytest.raises(PrerequisiteError, match="Podcast is not ready for publishing"):
        publishing.publish_podcast(db, item.id, config=config)


def test_publish_podcast_without_wordpress_post(db, config, make_client, make_item, monkeypatch):
    monkeypatch.setattr(
        podbean,
        "publish_episode",
        lambda **kwargs: {
            "episode_id": "ep-9",
            "url": "https://clearview.podbean.com/e/ep-9",
            "player_url": "https://www.podbean.com/player-v2/?i=ep-9",
        },
    )
    item = make_item(make_client(), status="SCHEDULED")
    item_id = item.id
    db.add(
        Podcast(
            content_item_id=item_id,
            client_id=item.client_id,
            script="<p>script</p>",
            status="READY",
            audio_url="https://cdn.test/ep.mp3",
        )
    )
    db.commit()

    result = publishing.publish_podcast(db, item_id, config=config)

    assert result == {
        "success": True,
        "url": "https://clearview.podbean.com/e/ep-9",
        "playerUrl": "https://www.podbean.com/player-v2/?i=ep-9",
        "embedded": False,
    }
    podcast = db.query(Podcast).one()
    assert podcast.status == "PUBLISHED"
    assert podcast.podbean_episode_id == "ep-9"
    item = _reload(db, item_id)
    assert item.podcast_status == "published"
    assert item.podcast_added_to_post is False


def test_podcast_embed_failure_keeps_episode_published(db, config, make_client, make_item, monkeypatch):
    monkeypatch.setattr(
        podbean,
        "publish_episode",
        lambda **kwargs: {
            "episode_id": "ep-9",
            "url": "https://clearview.podbean.com/e/ep-9",
            "player_url": "https://www.podbean.com/player-v2/?i=ep-9",
        },
    )

    def _update(**kwargs):
        raise IntegrationError("HTTP 502 from WordPress")

    monkeypatch.setattr(wordpress, "wp_update_post", _update)
    item = make_item(make_client(), status="PUBLISHED", client_blog_published=True)
    item_id = item.id
    db.add(
        BlogPost(
            content_item_id=item_id,
            client_id=item.client_id,
            title="Windshield Replacement Time",
            slug="windshield-replacement-time",
            content="<p>Body.</p>",
            wordpress_post_id=42,
            wordpress_url="https://clearview.test/windshield-replacement-time/",
        )
    )
    db.add(
        Podcast(
            content_item_id=item_id,
            client_id=item.client_id,
            script="<p>script</p>",
            status="READY",
            audio_url="https://cdn.test/ep.mp3",
        )
    )
    db.commit()

    result = publishing.publish_podcast(db, item_id, config=config)

    assert result["success"] is True
    assert result["embedded"] is False
    assert result["embedError"] == "HTTP 502 from WordPress"
    item = _reload(db, item_id)
    assert item.podcast_status == "published"
    assert item.podcast_added_to_post is False
    assert item.podcast_added_at is None
    assert db.query(Podcast).one().status == "PUBLISHED"


def test_existing_post_keeps_recorded_embeds(db, config, make_client, make_item, no_approval, monkeypatch):
    updates = []

    def _update(**kwargs):
        updates.append(kwargs)
        return {"id": kwargs["post_id"], "link": "https://clearview.test/windshield-replacement-time/"}

    monkeypatch.setattr(wordpress, "wp_update_post", _update)
    monkeypatch.setattr(wordpress, "wp_create_post", lambda **kwargs: pytest.fail("post already exists"))
    item = make_item(
        make_client(), status="REVIEW", blog_generated=True, podcast_added_to_post=True, short_video_added_to_post=False
    )
    item_id = item.id
    db.add(
        BlogPost(
            content_item_id=item_id,
            client_id=item.client_id,
            title="Windshield Replacement Time",
            slug="windshield-replacement-time",
            content="<h2>Answer</h2>\n<p>Body.</p>",
            wordpress_post_id=42,
        )
    )
    db.add(
        Podcast(
            content_item_id=item_id,
            client_id=item.client_id,
            script="<p>script</p>",
            status="PUBLISHED",
            audio_url="https://cdn.test/ep.mp3",
            podbean_player_url="https://www.podbean.com/player-v2/?i=ep-9",
        )
    )
    db.commit()

    result = publishing.run_publish(db, item_id, BLOG_ONLY, config=config)

    assert result["success"] is True
    assert len(updates) == 1
    assert updates[0]["post_id"] == 42
    content = updates[0]["fields"]["content"]
    assert "podcast-embed" in content
    assert "google-maps-embed" in content
    assert "yt-shorts-embed" not in content
