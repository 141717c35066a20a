from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from caption_pipeline.settings_store import SettingsStore
from caption_pipeline.text.transforms import SplitRules, parse_images

DOCUMENT_VERSION = "2.0"


def format_processing_time(seconds: float | None) -> str:
    """`42s` under a minute, otherwise `5m30s`."""
    total = int(round(float(seconds or 0)))
    if total < 60:
        return f"{total}s"
    return f"{total // 60}m{total % 60}s"


def split_rules(settings: SettingsStore, kind: str) -> SplitRules:
    voice = str(kind) == "voice"
    max_key = "split_max_chars_voice" if voice else "split_max_chars_video"
    return SplitRules(
        min_chars=settings.get_int("split_min_chars", 6) or 6,
        max_chars=settings.get_int(max_key, 12 if voice else 20) or (12 if voice else 20),
        remove_trailing=settings.get_bool("split_remove_trailing_punctuation", True),
    )


def subtitle_styles(settings: SettingsStore) -> dict[str, Any]:
    g = settings.get
    return {
        "fontFamily": g("style_font_family"),
        "fontSize": g("style_font_size"),
        "fontWeight": g("style_font_weight"),
        "colorCurrent": g("style_color_current"),
        "colorOther": g("style_color_other"),
        "colorHighlight": g("style_color_highlight"),
        "strokeEnabled": settings.get_bool("style_stroke_enabled"),
        "strokeColor": g("style_stroke_color"),
        "strokeWidth": g("style_stroke_width"),
        "shadowEnabled": settings.get_bool("style_shadow_enabled"),
        "shadowColor": g("style_shadow_color"),
        "shadowBlur": g("style_shadow_blur"),
        "position": g("style_position"),
        "marginBottom": g("style_margin_bottom"),
        "lineHeight": g("style_line_height"),
        "maxLines": g("style_max_lines"),
    }


def slideshow_settings(settings: SettingsStore) -> dict[str, Any]:
    def f(key: str, default: float) -> float:
        return settings.get_float(key, None) or default

    return {
        "baseDuration": f("slideshow_base_duration", 5.0),
        "weightFull": f("slideshow_weight_full", 2.0),
        "weightTransparent": f("slideshow_weight_transparent", 2.0),
        "weightWide": f("slideshow_weight_wide", 2.5),
        "weightCarousel": f("slideshow_weight_carousel", 3.3),
        "transition": settings.get("slideshow_transition") or "fade",
        "transitionDuration": f("slideshow_transition_duration", 0.5),
        "bgColors": [
            settings.get("slideshow_bg_color_1") or "#1a1a2e",
            settings.get("slideshow_bg_color_2") or "#16213e",
            settings.get("slideshow_bg_color_3") or "#0f3460",
        ],
    }


def background_defaults(settings: SettingsStore) -> dict[str, Any]:
    return {
        "type": settings.get("background_default_type") or "color",
        "color": settings.get("background_default_color") or "#1a1a2e",
        "gradient": settings.get("background_default_gradient"),
        "image": settings.get("background_default_image"),
        "opacity": settings.get_float("background_default_opacity", 1.0),
        "blur": settings.get_float("background_default_blur", 0.0),
        "overlay": settings.get("background_default_overlay"),
        "overlayEnabled": settings.get_bool("background_overlay_enabled", True),
    }


def _audio_url(params: dict[str, Any], kind: str) -> str:
    # voice runs play the mixed final track when one exists
    if str(kind) == "voice":
        return params.get("finalAudioUrl") or params.get("audioUrl") or ""
    return params.get("audioUrl") or params.get("finalAudioUrl") or ""


def build_document(
    lines: list[dict[str, Any]],
    *,
    kind: str,
    params: dict[str, Any],
    settings: SettingsStore,
    record_ref: str | None = None,
) -> dict[str, Any]:
    """
    Assemble the player-ready caption document from aligned lines and the
    resolved run parameters.
    """
    images = params.get("images")
    if isinstance(images, str) or images is None:
        images = parse_images(images or params.get("imageUrl") or "")
    background = params.get("background")
    if not isinstance(background, dict):
        background = background_defaults(settings)

    return {
        "version": DOCUMENT_VERSION,
        "mode": str(kind),
        "generatedAt": datetime.now(tz=timezone.utc).isoformat(),
        "metadata": {
            "title": params.get("title") or "Untitled",
            "artist": params.get("artist") or params.get("speaker") or "Unknown",
            "ragicCode": record_ref,
            "region": params.get("region") or None,
        },
        "audio": {
            "url": _audio_url(params, kind),
            "mergedUrl": params.get("mergedAudioUrl") or None,
        },
        "images": images,
        "background": background,
        "lyrics": list(lines),
        "styles": subtitle_styles(settings),
        "slideshow": slideshow_settings(settings),
    }
