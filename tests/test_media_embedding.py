import json

import pytest

from content_backend.api import content_splicer as splicer
from content_backend.api import embeds, media_embedding
from content_backend.api.content_models import BlogPost, ContentItem, Image, Podcast, Video
from content_backend.api.integrations import wordpress
from content_backend.api.integrations.http import IntegrationError

BLOG_HTML = "<p>Intro.</p>\n<h2>One</h2>\n<p>Body.</p>"
SCHEMA = json.dumps({"@context": "https://schema.org", "@graph": [{"@type": "FAQPage"}]})
PLAYER_URL = "https://www.podbean.com/player-v2/?i=abc123"


@pytest.fixture
def wp_updates(monkeypatch):
    updates = []

    def _update(**kwargs):
        updates.append(kwargs)
        return {"id": kwargs["post_id"]}

    monkeypatch.setattr(wordpress, "wp_update_post", _update)
    return updates


@pytest.fixture
def published_item(db, make_client, make_item):
    item = make_item(make_client(), status="PUBLISHED", schema_generated=True, podcast_added_to_post=True)
    db.add(
        BlogPost(
            content_item_id=item.id,
            client_id=item.client_id,
            title="Windshield Replacement Time",
            slug="windshield-replacement-time",
            content=BLOG_HTML,
            schema_json=SCHEMA,
            wordpress_post_id=42,
            wordpress_url="https://clearview.test/windshield-replacement-time/",
        )
    )
    db.add(
        Podcast(
            content_item_id=item.id,
            client_id=item.client_id,
            script="<p>script</p>",
            status="PUBLISHED",
            audio_url="https://cdn.test/ep.mp3",
            podbean_player_url=PLAYER_URL,
        )
    )
    db.add(
        Image(
            content_item_id=item.id,
            client_id=item.client_id,
            image_type="BLOG_FEATURED",
            file_name="featured.png",
            gcs_url="https://storage.googleapis.com/test-bucket/featured.png",
            width=1920,
            height=1080,
        )
    )
    db.commit()
    return item


def test_rebuild_is_idempotent():
    podcast = embeds.podcast_embed("Episode", PLAYER_URL)
    maps = embeds.google_maps_embed("Clearview", "100 Main St", "Boise", "ID", "83702")

    once, embedded = media_embedding.rebuild_post_content(BLOG_HTML, schema_json=SCHEMA, podcast=podcast, maps=maps)
    twice, _ = media_embedding.rebuild_post_content(once, schema_json=SCHEMA, podcast=podcast, maps=maps)

    assert embedded == ["schema", "podcast", "maps"]
    assert twice == once
    assert splicer.strip_embeds(once) == BLOG_HTML


def test_rebuild_without_embeds_strips_old_ones():
    podcast = embeds.podcast_embed("Episode", PLAYER_URL)
    with_podcast, _ = media_embedding.rebuild_post_content(BLOG_HTML, podcast=podcast)

    bare, embedded = media_embedding.rebuild_post_content(with_podcast)

    assert embedded == []
    assert bare == BLOG_HTML


def test_republish_twice_produces_identical_post(db, config, published_item, wp_updates):
    first = media_embedding.republish_blog(db, published_item.id, config=config)
    second = media_embedding.republish_blog(db, published_item.id, config=config)

    assert first["embedded"] == ["schema", "featured_image", "podcast", "maps"]
    assert second["embedded"] == first["embedded"]
    assert len(wp_updates) == 2
    assert wp_updates[0]["post_id"] == 42
    assert wp_updates[0]["fields"]["content"] == wp_updates[1]["fields"]["content"]
    content = wp_updates[0]["fields"]["content"]
    assert splicer.ContentDocument(content).embed_kinds() == ["schema", "featured_image", "podcast", "maps"]
    assert splicer.strip_embeds(content) == BLOG_HTML


def test_republish_requires_wordpress_post(db, config, make_client, make_item, wp_updates):
    item = make_item(make_client())
    db.add(BlogPost(content_item_id=item.id, client_id=item.client_id, title="T", slug="t", content="<p>x</p>"))
    db.commit()

    with pytest.raises(media_embedding.PrerequisiteError, match="Blog has not been published yet"):
        media_embedding.republish_blog(db, item.id, config=config)
    assert wp_updates == []


def test_embed_all_media_reports_skipped_short_video(db, config, published_item, wp_updates):
    published_item.podcast_added_to_post = False
    db.commit()

    result = media_embedding.embed_all_media(db, published_item.id, config=config)

    assert result["success"] is True
    assert "podcast" in result["embedded"]
    assert result["skipped"] == {"shortVideo": "No YouTube video URL found", "podcast": None}
    db.refresh(published_item)
    assert published_item.podcast_added_to_post is True


def test_embed_all_media_returns_wordpress_error(db, config, published_item, monkeypatch):
    def _fail(**kwargs):
        raise IntegrationError("WordPress HTTP 500")

    monkeypatch.setattr(wordpress, "wp_update_post", _fail)

    result = media_embedding.embed_all_media(db, published_item.id, config=config)

    assert result == {
        "success": False,
        "embedded": [],
        "skipped": {"shortVideo": "No YouTube video URL found", "podcast": None},
        "error": "WordPress HTTP 500",
    }


def test_complete_media_pipeline_embeds_and_publishes(db, config, make_client, make_item, wp_updates, monkeypatch):
    monkeypatch.delenv("WRHQ_LATE_TIKTOK_ACCOUNT_ID", raising=False)
    monkeypatch.delenv("WRHQ_LATE_INSTAGRAM_ACCOUNT_ID", raising=False)
    monkeypatch.setattr(wordpress, "wp_get_post", lambda **kwargs: {"id": kwargs["post_id"], "content": BLOG_HTML})
    item = make_item(make_client(), status="SCHEDULED", blog_generated=True)
    item_id = item.id
    video_url = "https://storage.googleapis.com/test-bucket/short.mp4"
    db.add(
        BlogPost(
            content_item_id=item_id,
            client_id=item.client_id,
            title="Windshield Replacement Time",
            slug="windshield-replacement-time",
            content=BLOG_HTML,
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
            podbean_player_url=PLAYER_URL,
        )
    )
    db.add(Video(content_item_id=item_id, client_id=item.client_id, status="READY", video_url=video_url))
    db.commit()

    result = media_embedding.complete_media_pipeline(
        db, item_id, video_url=video_url, thumbnail_url="https://cdn.test/short.jpg", duration=28, config=config
    )

    assert result["success"] is True
    assert result["steps"]["storage"] == {"success": True, "url": video_url}
    assert result["steps"]["youtube"] == {"success": True, "url": None}
    assert result["steps"]["wrhq_video_social"]["platforms"] == {
        "tiktok": "not_configured",
        "instagram": "not_configured",
    }
    assert result["steps"]["schema"]["embedded"] == ["schema", "podcast", "maps"]
    content = wp_updates[0]["fields"]["content"]
    assert '"VideoObject"' in content
    assert splicer.strip_embeds(content) == BLOG_HTML

    db.expire_all()
    item = db.query(ContentItem).filter(ContentItem.id == item_id).one()
    assert item.status == "PUBLISHED"
    assert item.pipeline_step is None
    assert item.schema_generated is True
    assert item.schema_update_count == 1
    assert item.podcast_added_to_post is True
