from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence

from .llm import LLMError, call_llm_json

DEFAULT_BRAND_VOICE = "Professional, helpful, and knowledgeable"

PLATFORM_GUIDELINES = {
    "facebook": "Longer, conversational, storytelling approach. Can include the blog link inline.",
    "instagram": 'Shorter, emoji-friendly, hashtag-heavy. Mention "link in bio" for the blog post.',
    "linkedin": "Professional, industry insights focused. Include the blog link inline.",
    "twitter": "Concise, punchy, engaging. Keep it under 280 characters including the link.",
    "tiktok": "Casual, trend-aligned, relatable. Mention link in bio.",
    "gbp": "Local and practical. One short paragraph that invites the reader to call or visit.",
    "youtube": "Descriptive and searchable. Lead with the question being answered.",
}

BLOG_SYSTEM_PROMPT = (
    "You are an expert auto glass content writer creating SEO-optimized blog posts. "
    "Return only a JSON object, no prose around it."
)
SOCIAL_SYSTEM_PROMPT = "You write social media posts for local auto glass companies. Return only a JSON object."

_BLOG_KEYS = ("title", "slug", "content", "excerpt", "metaTitle", "metaDescription", "focusKeyword")


def count_words(html: str) -> int:
    text = re.sub(r"<[^>]+>", " ", html or "")
    return len([word for word in text.split() if word])


def _blog_prompt(context: Dict[str, Any], *, wrhq: bool) -> str:
    service_areas = ", ".join(context.get("service_areas") or []) or context["city"]
    services = "Includes ADAS calibration" if context.get("has_adas") else "Standard auto glass services"
    lines = [
        f"Client: {context['business_name']} in {context['city']}, {context['state']}",
        f"Services: {services}",
        f"Service Areas: {service_areas}",
        f"Brand Voice: {context.get('brand_voice') or DEFAULT_BRAND_VOICE}",
        "",
        f'PAA Question: "{context["paa_question"]}"',
        "",
        "Requirements:",
    ]
    if wrhq:
        lines += [
            "- 500-800 words, written by the WRHQ auto glass directory as a partner spotlight",
            f"- Feature {context['business_name']} as the trusted local expert",
            f"- Link to the client's article: {context.get('client_blog_url') or context.get('website') or ''}",
            f"- Mention the phone number {context.get('phone') or ''}",
        ]
    else:
        lines += [
            "- 800-1500 words",
            "- Answer the question directly in the first sentence",
            "- Use H2/H3 headings for clear structure",
            "- Naturally mention service areas throughout the content",
            f'- Include CTA: "{context.get("cta_text") or "Get a Free Quote"}" with link to '
            f"{context.get('cta_url') or context.get('website') or ''}",
        ]
    lines += [
        "",
        "Generate the blog post as semantic HTML (using h2, h3, p, ul, li tags).",
        "Return JSON with keys: " + ", ".join(_BLOG_KEYS),
    ]
    return "\n".join(lines)


def _normalize_blog(payload: Dict[str, Any]) -> Dict[str, Any]:
    content = str(payload.get("content") or "").strip()
    title = str(payload.get("title") or "").strip()
    if not content or not title:
        raise LLMError("Blog response is missing title or content.")
    slug = str(payload.get("slug") or "").strip() or re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return {
        "title": title,
        "slug": slug,
        "content": content,
        "excerpt": str(payload.get("excerpt") or "").strip(),
        "meta_title": str(payload.get("metaTitle") or title).strip(),
        "meta_description": str(payload.get("metaDescription") or "").strip(),
        "focus_keyword": str(payload.get("focusKeyword") or "").strip(),
        "word_count": count_words(content),
    }


def generate_blog_post(context: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    payload = call_llm_json(
        system_prompt=BLOG_SYSTEM_PROMPT,
        user_prompt=_blog_prompt(context, wrhq=False),
        api_key=config["anthropic_api_key"],
        base_url=config["anthropic_base_url"],
        model=config["anthropic_model"],
        timeout_seconds=config["llm_timeout_seconds"],
        max_tokens=4096,
    )
    return _normalize_blog(payload)


def generate_wrhq_blog_post(context: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    payload = call_llm_json(
        system_prompt=BLOG_SYSTEM_PROMPT,
        user_prompt=_blog_prompt(context, wrhq=True),
        api_key=config["anthropic_api_key"],
        base_url=config["anthropic_base_url"],
        model=config["anthropic_model"],
        timeout_seconds=config["llm_timeout_seconds"],
        max_tokens=3000,
    )
    return _normalize_blog(payload)


def generate_social_caption(
    *,
    platform: str,
    business_name: str,
    blog_title: str,
    blog_excerpt: str,
    blog_url: str,
    config: Dict[str, Any],
) -> Dict[str, Any]:
    prompt = "\n".join(
        [
            f"Generate a {platform} post for an auto glass company.",
            "",
            f"Business: {business_name}",
            f'Blog Title: "{blog_title}"',
            f'Blog Summary: "{blog_excerpt}"',
            f"Blog URL: {blog_url}",
            "",
            f"Platform Guidelines: {PLATFORM_GUIDELINES.get(platform, PLATFORM_GUIDELINES['facebook'])}",
            "",
            "Return JSON with:",
            "- caption: The main post text",
            "- hashtags: Array of relevant hashtags (without #)",
            "- firstComment: A follow-up comment with the blog link",
        ]
    )
    payload = call_llm_json(
        system_prompt=SOCIAL_SYSTEM_PROMPT,
        user_prompt=prompt,
        api_key=config["anthropic_api_key"],
        base_url=config["anthropic_base_url"],
        model=config["anthropic_model"],
        timeout_seconds=config["llm_timeout_seconds"],
        max_tokens=1024,
    )
    caption = str(payload.get("caption") or "").strip()
    if not caption:
        raise LLMError(f"Social caption response for {platform} is missing a caption.")
    return {
        "caption": caption,
        "hashtags": _clean_hashtags(payload.get("hashtags")),
        "first_comment": str(payload.get("firstComment") or "").strip() or None,
    }


def _clean_hashtags(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [str(tag).strip().lstrip("#") for tag in raw if str(tag).strip().lstrip("#")]


def build_video_description(
    *,
    paa_question: str,
    business_name: str,
    city: str,
    state: str,
    client_blog_url: Optional[str],
    wrhq_blog_url: Optional[str],
    podcast_url: Optional[str] = None,
    google_maps_url: Optional[str] = None,
) -> str:
    lines = [
        paa_question,
        "",
        f"In this video, {business_name} answers your questions about windshield repair and replacement "
        f"services in {city}, {state}.",
        "",
        "RESOURCES:",
    ]
    if client_blog_url:
        lines.append(f"Read the full article: {client_blog_url}")
    if wrhq_blog_url:
        lines.append(f"WRHQ Directory: {wrhq_blog_url}")
    if google_maps_url:
        lines.append(f"Find us on Google Maps: {google_maps_url}")
    if podcast_url:
        lines.append(f"Listen to the Podcast: {podcast_url}")
    city_tag = re.sub(r"\s+", "", city.lower())
    lines += [
        "",
        "---",
        "",
        f"{business_name} provides professional windshield repair and auto glass replacement services "
        f"in the {city}, {state} area.",
        "",
        f"#windshieldrepair #autoglass #windshieldreplacement #{city_tag} #{state.lower()}",
    ]
    return "\n".join(lines)


def video_caption(*, title: str, business_name: str, city: str, state: str, paa_question: str) -> str:
    city_tag = re.sub(r"\s+", "", city)
    return (
        f"{title}\n\n{business_name} in {city}, {state} answers: \"{paa_question}\"\n\n"
        f"#AutoGlass #WindshieldRepair #{city_tag} #CarCare"
    )


def wrhq_spotlight_caption(business_name: str, paa_question: str) -> str:
    return f"WRHQ Partner Spotlight: {business_name} on {paa_question}\n\n#WRHQ #AutoGlassPartner"


def fallback_social_caption(paa_question: str) -> Dict[str, Any]:
    return {
        "caption": f"{paa_question}\n\nLearn more on our blog!",
        "hashtags": ["AutoGlass", "WindshieldRepair"],
        "first_comment": None,
    }


def format_hashtags(hashtags: Sequence[str]) -> str:
    return " ".join(f"#{tag}" for tag in hashtags if tag)
