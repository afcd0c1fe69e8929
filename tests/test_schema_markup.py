import json

from content_backend.api.content_models import BlogPost, Client
from content_backend.api.schema_markup import first_paragraph_text, format_duration, generate_schema_graph


def _client(**overrides):
    values = {
        "business_name": "Clearview Auto Glass",
        "city": "Boise",
        "state": "ID",
        "street_address": "100 Main St",
        "postal_code": "83702",
        "wordpress_url": "https://clearview.test/",
        "service_areas": ["Boise", "Meridian"],
        "has_adas_calibration": True,
        "offers_mobile_service": False,
        "google_rating": 4.86,
        "google_review_count": 120,
    }
    values.update(overrides)
    return Client(**values)


def _blog():
    return BlogPost(
        title="How Long Does Windshield Replacement Take?",
        slug="windshield-replacement-time",
        content="<h2>Answer</h2><p>Most replacements take about an hour.</p><p>More.</p>",
        excerpt="About an hour.",
    )


def _types(graph):
    return [node["@type"] for node in graph["@graph"]]


def test_format_duration():
    assert format_duration(45) == "PT45S"
    assert format_duration(125) == "PT2M5S"
    assert format_duration(3725) == "PT1H2M5S"


def test_first_paragraph_text_falls_back_to_truncated_text():
    assert first_paragraph_text("<div>short text</div>") == "short text"
    long_text = "word " * 100
    assert first_paragraph_text(f"<div>{long_text}</div>").endswith("...")


def test_graph_without_media():
    graph = json.loads(generate_schema_graph(client=_client(), blog_post=_blog(), paa_question="How long?"))

    assert graph["@context"] == "https://schema.org"
    assert _types(graph) == ["AutoGlassShop", "BlogPosting", "FAQPage", "ItemList"]
    shop = graph["@graph"][0]
    assert shop["@id"] == "https://clearview.test#organization"
    assert shop["aggregateRating"]["ratingValue"] == "4.9"
    offers = [offer["itemOffered"]["name"] for offer in shop["hasOfferCatalog"]["itemListElement"]]
    assert "ADAS Calibration" in offers
    assert "Mobile Auto Glass Service" not in offers
    answer = graph["@graph"][2]["mainEntity"][0]["acceptedAnswer"]["text"]
    assert answer == "Most replacements take about an hour."


def test_graph_lists_podcast_and_video():
    graph = json.loads(
        generate_schema_graph(
            client=_client(google_rating=None),
            blog_post=_blog(),
            paa_question="How long?",
            podcast_audio_url="https://cdn.test/episode.mp3",
            podcast_duration=600,
            video_url="https://cdn.test/short.mp4",
            video_duration=30,
        )
    )

    assert _types(graph) == ["AutoGlassShop", "BlogPosting", "FAQPage", "ItemList", "PodcastEpisode", "VideoObject"]
    assert "aggregateRating" not in graph["@graph"][0]
    positions = [(entry["position"], entry["item"]["@type"]) for entry in graph["@graph"][3]["itemListElement"]]
    assert positions == [(1, "BlogPosting"), (2, "PodcastEpisode"), (3, "VideoObject")]
    assert graph["@graph"][4]["audio"]["duration"] == "PT10M0S"
    assert graph["@graph"][5]["duration"] == "PT30S"
