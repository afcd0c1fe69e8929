from __future__ import annotations

from typing import Any, Dict, List

from .http import IntegrationError, request_json

LANDSCAPE = {"image_type": "BLOG_FEATURED", "suffix": "landscape", "aspect_ratio": "16:9", "width": 1920, "height": 1080}
SQUARE = {"image_type": "INSTAGRAM_FEED", "suffix": "square", "aspect_ratio": "1:1", "width": 1080, "height": 1080}


def build_image_prompt(*, paa_question: str, business_name: str, city: str, state: str) -> str:
    return (
        "Professional photograph for an auto glass repair company blog. "
        f'Topic: "{paa_question}". Setting: {city}, {state}. '
        f"Clean, modern, well-lit scene of a car windshield or technician at work for {business_name}. "
        "No text, no logos, no watermarks."
    )


def generate_image(prompt: str, *, aspect_ratio: str, config: Dict[str, Any]) -> str:
    """Return the generated image as a ``data:`` URL."""
    if not config["imagen_api_key"]:
        raise IntegrationError("GOOGLE_AI_API_KEY is not set.")
    url = f"{config['imagen_base_url'].rstrip('/')}/models/{config['imagen_model']}:predict"
    payload = request_json(
        "POST",
        url,
        headers={"Content-Type": "application/json"},
        params={"key": config["imagen_api_key"]},
        json_body={
            "instances": [{"prompt": prompt}],
            "parameters": {"sampleCount": 1, "aspectRatio": aspect_ratio},
        },
        timeout_seconds=config["timeout_seconds"],
    )
    predictions = payload.get("predictions")
    if not isinstance(predictions, list) or not predictions or not isinstance(predictions[0], dict):
        raise IntegrationError("Image generation returned no predictions.")
    encoded = predictions[0].get("bytesBase64Encoded")
    if not encoded:
        raise IntegrationError("Image generation response did not include image bytes.")
    mime_type = predictions[0].get("mimeType") or "image/png"
    return f"data:{mime_type};base64,{encoded}"


def generate_both_images(prompt: str, *, file_stem: str, alt_text: str, config: Dict[str, Any]) -> List[Dict[str, Any]]:
    images: List[Dict[str, Any]] = []
    for shape in (LANDSCAPE, SQUARE):
        images.append(
            {
                "image_type": shape["image_type"],
                "file_name": f"{file_stem}-{shape['suffix']}.png",
                "url": generate_image(prompt, aspect_ratio=shape["aspect_ratio"], config=config),
                "width": shape["width"],
                "height": shape["height"],
                "alt_text": alt_text,
            }
        )
    return images
