from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from .content_models import BlogPost, Client

FIRST_PARAGRAPH_FALLBACK_CHARS = 300


def format_duration(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"PT{hours}H{minutes}M{secs}S"
    if minutes:
        return f"PT{minutes}M{secs}S"
    return f"PT{secs}S"


def first_paragraph_text(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    paragraph = soup.find("p")
    if paragraph is not None:
        return " ".join(paragraph.get_text(" ").split())
    text = " ".join(soup.get_text(" ").split())
    if len(text) > FIRST_PARAGRAPH_FALLBACK_CHARS:
        return text[:FIRST_PARAGRAPH_FALLBACK_CHARS] + "..."
    return text


def _compact(node: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in node.items() if value is not None}


def _offer(name: str, description: str) -> Dict[str, Any]:
    return {"@type": "Offer", "itemOffered": {"@type": "Service", "name": name, "description": description}}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def generate_schema_graph(
    *,
    client: Client,
    blog_post: BlogPost,
    paa_question: str,
    podcast_audio_url: Optional[str] = None,
    podcast_duration: Optional[int] = None,
    video_url: Optional[str] = None,
    video_thumbnail_url: Optional[str] = None,
    video_duration: Optional[int] = None,
    featured_image_url: Optional[str] = None,
) -> str:
    base_url = (client.wordpress_url or "").rstrip("/")
    article_url = blog_post.wordpress_url or f"{base_url}/blog/{blog_post.slug}"
    organization_id = f"{base_url}#organization"
    article_id = f"{article_url}#article"

    offers = [
        _offer("Windshield Replacement", "Professional windshield replacement service"),
        _offer("Rock Chip Repair", "Quick and affordable rock chip repair"),
    ]
    if client.has_adas_calibration:
        offers.append(_offer("ADAS Calibration", "Advanced Driver Assistance System calibration"))
    if client.offers_mobile_service:
        offers.append(_offer("Mobile Auto Glass Service", "Convenient mobile auto glass repair and replacement"))

    local_business = _compact(
        {
            "@type": "AutoGlassShop",
            "@id": organization_id,
            "name": client.business_name,
            "image": client.logo_url,
            "url": base_url or client.website,
            "telephone": client.phone,
            "email": client.email,
            "address": _compact(
                {
                    "@type": "PostalAddress",
                    "streetAddress": client.street_address,
                    "addressLocality": client.city,
                    "addressRegion": client.state,
                    "postalCode": client.postal_code,
                    "addressCountry": "US",
                }
            ),
            "areaServed": [{"@type": "City", "name": area} for area in client.service_areas or []],
            "hasOfferCatalog": {"@type": "OfferCatalog", "itemListElement": offers},
        }
    )
    if client.google_rating and client.google_review_count:
        local_business["aggregateRating"] = {
            "@type": "AggregateRating",
            "ratingValue": f"{client.google_rating:.1f}",
            "reviewCount": client.google_review_count,
        }

    blog_posting = _compact(
        {
            "@type": "BlogPosting",
            "@id": article_id,
            "headline": blog_post.title,
            "description": blog_post.meta_description or blog_post.excerpt,
            "image": featured_image_url,
            "author": {"@type": "Organization", "@id": organization_id},
            "publisher": {"@type": "Organization", "@id": organization_id},
            "datePublished": _iso(blog_post.published_at),
            "dateModified": _iso(blog_post.published_at),
            "mainEntityOfPage": {"@type": "WebPage", "@id": article_url},
            "about": {"@type": "Thing", "name": paa_question},
        }
    )

    faq_page = {
        "@type": "FAQPage",
        "mainEntity": [
            {
                "@type": "Question",
                "name": paa_question,
                "acceptedAnswer": {"@type": "Answer", "text": first_paragraph_text(blog_post.content)},
            }
        ],
    }

    list_items: List[Dict[str, Any]] = [
        {"@type": "ListItem", "position": 1, "item": {"@type": "BlogPosting", "@id": article_id}},
    ]
    graph: List[Dict[str, Any]] = [local_business, blog_posting, faq_page]
    extra: List[Dict[str, Any]] = []

    if podcast_audio_url:
        podcast_id = f"{article_url}#podcast"
        extra.append(
            _compact(
                {
                    "@type": "PodcastEpisode",
                    "@id": podcast_id,
                    "name": blog_post.title,
                    "description": blog_post.excerpt,
                    "audio": _compact(
                        {
                            "@type": "AudioObject",
                            "contentUrl": podcast_audio_url,
                            "duration": format_duration(podcast_duration) if podcast_duration else None,
                        }
                    ),
                    "partOfSeries": {
                        "@type": "PodcastSeries",
                        "name": f"{client.business_name} Auto Glass Insights",
                    },
                }
            )
        )
        list_items.append(
            {"@type": "ListItem", "position": len(list_items) + 1, "item": {"@type": "PodcastEpisode", "@id": podcast_id}}
        )

    if video_url:
        video_id = f"{article_url}#video"
        extra.append(
            _compact(
                {
                    "@type": "VideoObject",
                    "@id": video_id,
                    "name": blog_post.title,
                    "description": blog_post.excerpt or blog_post.title,
                    "contentUrl": video_url,
                    "thumbnailUrl": video_thumbnail_url,
                    "duration": format_duration(video_duration) if video_duration else None,
                    "uploadDate": _iso(blog_post.published_at),
                }
            )
        )
        list_items.append(
            {"@type": "ListItem", "position": len(list_items) + 1, "item": {"@type": "VideoObject", "@id": video_id}}
        )

    graph.append({"@type": "ItemList", "name": f"{blog_post.title} - All Formats", "itemListElement": list_items})
    graph.extend(extra)
    return json.dumps({"@context": "https://schema.org", "@graph": graph}, indent=2, ensure_ascii=False)
