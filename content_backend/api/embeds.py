"""HTML snippets that get spliced into WordPress post bodies.

Every snippet opens with a marker comment and carries a wrapper class so
``content_splicer.strip_embeds`` can find and remove it on the next rebuild.
"""
from __future__ import annotations

import json
import re
from html import escape
from typing import Optional
from urllib.parse import parse_qs, quote, urlparse

SCHEMA_MARKER = "JSON-LD Schema Markup"
SHORT_VIDEO_MARKER = "YouTube Short Video"
PODCAST_MARKER = "Podcast Episode"
MAPS_MARKER = "Google Maps Embed"
LONGFORM_MARKER = "Long-form Video"
FEATURED_IMAGE_MARKER = "Featured Image"

PODBEAN_PLAYER_SUFFIX = (
    "&from=pb6admin&share=1&download=1&rtl=0&fonts=Arial&skin=1"
    "&font-color=&logo_link=episode_page&btn-skin=7"
)

_SHORTS_STYLE = """<style>
.yt-shorts-embed {
  float: right !important;
  width: 280px;
  margin: 0 0 20px 25px !important;
  shape-outside: margin-box;
}
.yt-shorts-embed .video-wrapper {
  position: relative;
  padding-bottom: 177.78%;
  height: 0;
  overflow: hidden;
  border-radius: 12px;
  box-shadow: 0 4px 12px rgba(0,0,0,0.15);
}
.yt-shorts-embed iframe {
  position: absolute;
  top: 0;
  left: 0;
  width: 100%;
  height: 100%;
  border: none;
  border-radius: 12px;
}
@media (max-width: 600px) {
  .yt-shorts-embed { float: none !important; width: 100%; max-width: 320px; margin: 20px auto !important; }
}
</style>"""


def youtube_video_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()
    if host.endswith("youtube.com"):
        if "/shorts/" in parsed.path:
            video_id = parsed.path.split("/shorts/", 1)[1].split("/")[0]
            return video_id or None
        values = parse_qs(parsed.query).get("v")
        return values[0] if values and values[0] else None
    if host.endswith("youtu.be"):
        video_id = parsed.path.lstrip("/").split("/")[0]
        return video_id or None
    return None


def google_maps_embed(
    business_name: str,
    street_address: Optional[str],
    city: str,
    state: str,
    postal_code: Optional[str],
) -> str:
    address_query = quote(
        f"{business_name}, {street_address or ''}, {city}, {state} {postal_code or ''}".strip(),
        safe="",
    )
    name = escape(business_name)
    return (
        f"<!-- {MAPS_MARKER} -->\n"
        '<div class="google-maps-embed" style="margin: 30px 0;">\n'
        f"  <h3>📍 Find {name}</h3>\n"
        '  <div style="position: relative; padding-bottom: 56.25%; height: 0; overflow: hidden; '
        'border-radius: 12px; box-shadow: 0 4px 12px rgba(0,0,0,0.1);">\n'
        f'    <iframe src="https://www.google.com/maps?q={address_query}&amp;output=embed" width="100%" '
        'height="100%" style="position: absolute; top: 0; left: 0; width: 100%; height: 100%; border: 0;" '
        'allowfullscreen="" loading="lazy" referrerpolicy="no-referrer-when-downgrade" '
        f'title="Map showing {name} location"></iframe>\n'
        "  </div>\n"
        "</div>"
    )


def podcast_embed(title: str, player_url: str) -> str:
    src = escape(f"{player_url}{PODBEAN_PLAYER_SUFFIX}")
    return (
        f"<!-- {PODCAST_MARKER} -->\n"
        '<div class="podcast-embed" style="margin: 30px 0;">\n'
        "  <h3>🎧 Listen to This Episode</h3>\n"
        f'  <iframe title="{escape(title)}" allowtransparency="true" height="150" width="100%" '
        'style="border: none; min-width: min(100%, 430px);height:150px;" scrolling="no" '
        f'data-name="pb-iframe-player" src="{src}" loading="lazy"></iframe>\n'
        "</div>"
    )


def short_video_embed(youtube_url: str) -> Optional[str]:
    video_id = youtube_video_id(youtube_url)
    if not video_id:
        return None
    return (
        f"<!-- {SHORT_VIDEO_MARKER} -->\n"
        f"{_SHORTS_STYLE}\n"
        '<div class="yt-shorts-embed">\n'
        '  <div class="video-wrapper">\n'
        f'    <iframe src="https://www.youtube.com/embed/{escape(video_id)}?rel=0&amp;modestbranding=1" '
        'title="YouTube Short" allow="accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; '
        'picture-in-picture" allowfullscreen=""></iframe>\n'
        "  </div>\n"
        "</div>"
    )


def longform_video_embed(url: str, description: Optional[str] = None) -> str:
    youtube_id = youtube_video_id(url)
    vimeo_match = re.search(r"vimeo\.com/(\d+)", url or "")
    frame_style = "position: absolute; top: 0; left: 0; width: 100%; height: 100%;"
    container_style = "margin: 2rem 0; position: relative; padding-bottom: 56.25%; height: 0; overflow: hidden;"
    if youtube_id:
        player = (
            f'  <iframe style="{frame_style}" src="https://www.youtube.com/embed/{escape(youtube_id)}?rel=0" '
            'frameborder="0" allow="accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; '
            'picture-in-picture" allowfullscreen=""></iframe>\n'
        )
    elif vimeo_match:
        player = (
            f'  <iframe style="{frame_style}" src="https://player.vimeo.com/video/{vimeo_match.group(1)}" '
            'frameborder="0" allow="autoplay; fullscreen; picture-in-picture" allowfullscreen=""></iframe>\n'
        )
    else:
        container_style = "margin: 2rem 0;"
        player = (
            '  <video controls="" style="width: 100%; max-width: 100%;">'
            f'<source src="{escape(url)}" type="video/mp4"/></video>\n'
        )
    snippet = f'<!-- {LONGFORM_MARKER} -->\n<div class="video-container" style="{container_style}">\n{player}'
    if description:
        snippet += (
            '  <p class="video-description" style="font-size: 0.9rem; color: #666; margin-top: 0.5rem;">'
            f"{escape(description)}</p>\n"
        )
    return snippet + "</div>"


def featured_image_embed(image_url: str, alt_text: str) -> str:
    return (
        f"<!-- {FEATURED_IMAGE_MARKER} -->\n"
        '<figure class="featured-image" style="margin: 20px 0; text-align: center;">\n'
        f'  <img src="{escape(image_url)}" alt="{escape(alt_text)}" '
        'style="max-width: 100%; height: auto; border-radius: 8px;"/>\n'
        "</figure>"
    )


def schema_embed(schema_json: str) -> str:
    try:
        body = json.dumps(json.loads(schema_json), indent=2, ensure_ascii=False)
    except ValueError:
        body = schema_json
    body = body.replace("</", "<\\/")
    return f'<!-- {SCHEMA_MARKER} -->\n<script type="application/ld+json">\n{body}\n</script>'
