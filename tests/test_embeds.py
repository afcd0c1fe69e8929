import json

from content_backend.api import embeds


def test_youtube_video_id_variants():
    assert embeds.youtube_video_id("https://www.youtube.com/shorts/abc123XYZ") == "abc123XYZ"
    assert embeds.youtube_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10") == "dQw4w9WgXcQ"
    assert embeds.youtube_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert embeds.youtube_video_id("https://vimeo.com/12345") is None
    assert embeds.youtube_video_id(None) is None


def test_short_video_embed_requires_youtube_url():
    assert embeds.short_video_embed("https://example.com/video.mp4") is None
    snippet = embeds.short_video_embed("https://youtu.be/abc123XYZ")
    assert snippet.startswith(f"<!-- {embeds.SHORT_VIDEO_MARKER} -->")
    assert "https://www.youtube.com/embed/abc123XYZ" in snippet


def test_podcast_embed_appends_player_options():
    snippet = embeds.podcast_embed('Title "quoted"', "https://www.podbean.com/player-v2/?i=xyz")

    assert 'title="Title &quot;quoted&quot;"' in snippet
    assert "i=xyz&amp;from=pb6admin" in snippet


def test_longform_embed_picks_player():
    assert "player.vimeo.com/video/777" in embeds.longform_video_embed("https://vimeo.com/777")
    assert "youtube.com/embed/abc123XYZ" in embeds.longform_video_embed("https://youtu.be/abc123XYZ")
    direct = embeds.longform_video_embed("https://cdn.test/long.mp4", "Full walkthrough")
    assert '<source src="https://cdn.test/long.mp4" type="video/mp4"/>' in direct
    assert "Full walkthrough" in direct


def test_schema_embed_escapes_closing_tags():
    snippet = embeds.schema_embed(json.dumps({"text": "</script><b>"}))

    assert "</script><b>" not in snippet
    assert snippet.endswith("</script>")
    assert snippet.count("</script>") == 1


def test_maps_embed_quotes_address():
    snippet = embeds.google_maps_embed("Clear & Co", "100 Main St", "Boise", "ID", None)

    assert "Find Clear &amp; Co" in snippet
    assert "q=Clear%20%26%20Co%2C%20100%20Main%20St%2C%20Boise%2C%20ID" in snippet
