from __future__ import annotations

import json
from typing import Any

VIDEO_PROMPT = """You are a professional caption timing specialist.

[TASK]
The user supplies the correct song lyrics; the speech recognizer supplies word timestamps.
Map every lyric line onto the timestamps.

Rules:
1. Keep the original text exactly (no script conversion).
2. Output every lyric line; never drop one.
3. 6-20 characters per line.
4. Start times strictly increase.

[LYRICS]
[USER_LYRICS]

[TIMESTAMPS]
[ASSEMBLY_JSON]

[OUTPUT FORMAT]
const lyricsData=[
{line:"lyric",start:1.23,chars:[{char:"c",time:1.23}]},
];

Output the code only:"""

VOICE_PROMPT = """You are a professional caption timing specialist.

[TASK]
Map each subtitle line onto the speech-recognition timestamps.

Rules:
1. Keep the original text.
2. 6-12 characters per line.
3. Remove trailing punctuation.

[SUBTITLES]
[USER_LYRICS]

[TIMESTAMPS]
[ASSEMBLY_JSON]

[OUTPUT FORMAT]
const lyricsData=[
{line:"text",start:0.0},
];

Output the code only:"""

CORRECTION_PROMPT = """You are a caption proofreader.

[TASK] Correct conservatively; only fix:
1. missing lines
2. obvious timing mistakes
3. typos

[CURRENT CAPTIONS]
[CURRENT_LYRICS]

[ORIGINAL SCRIPT]
[ORIGINAL_LYRICS]

Output the corrected code only, in the same `const lyricsData=[...]` format:"""

REGIONS = [
    {"id": "TW", "name": "Taiwan", "language": "zh"},
    {"id": "HK", "name": "Hong Kong", "language": "zh"},
    {"id": "CN", "name": "China", "language": "zh"},
    {"id": "JP", "name": "Japan", "language": "ja"},
    {"id": "KR", "name": "Korea", "language": "ko"},
    {"id": "US", "name": "United States", "language": "en"},
]


def _s(key: str, value: Any, category: str, label: str = "", type_: str = "text", order: int = 0, options: str = "") -> dict[str, Any]:
    return {
        "key": key,
        "value": str(value),
        "category": category,
        "label": label,
        "type": type_,
        "options": options,
        "sort_order": order,
    }


DEFAULT_SETTINGS: list[dict[str, Any]] = [
    # --- provider credentials / endpoints ---
    _s("api_assemblyai_endpoint", "https://api.assemblyai.com/v2", "api_keys", "AssemblyAI endpoint", "text", 1),
    _s("api_assemblyai_key", "", "api_keys", "AssemblyAI API key", "password", 2),
    _s("api_whisper147_endpoint", "https://api.147ai.com/v1/audio/transcriptions", "api_keys", "147 Whisper endpoint", "text", 10),
    _s("api_whisper147_key", "", "api_keys", "147 Whisper API key", "password", 11),
    _s("api_whisper147_model", "whisper-1", "api_keys", "147 Whisper model", "text", 12),
    _s("api_whisperN1N_endpoint", "https://api.n1n.com/v1/audio/transcriptions", "api_keys", "N1N Whisper endpoint", "text", 20),
    _s("api_whisperN1N_key", "", "api_keys", "N1N Whisper API key", "password", 21),
    _s("api_whisperN1N_model", "whisper-1", "api_keys", "N1N Whisper model", "text", 22),
    _s("api_gemini147_endpoint", "https://api.147ai.com/v1/chat/completions", "api_keys", "147 Gemini endpoint", "text", 30),
    _s("api_gemini147_key", "", "api_keys", "147 Gemini API key", "password", 31),
    _s("api_gemini147_model", "gemini-2.5-pro", "api_keys", "147 Gemini model", "text", 32),
    _s("api_gemini147_max_tokens", "1000000", "api_keys", "147 Gemini max tokens", "number", 33),
    _s("api_gemini147_temperature", "", "api_keys", "147 Gemini temperature", "number", 34),
    _s("api_geminiN1N_endpoint", "https://api.n1n.com/v1/chat/completions", "api_keys", "N1N Gemini endpoint", "text", 40),
    _s("api_geminiN1N_key", "", "api_keys", "N1N Gemini API key", "password", 41),
    _s("api_geminiN1N_model", "gemini-2.5-pro", "api_keys", "N1N Gemini model", "text", 42),
    _s("api_geminiN1N_max_tokens", "1000000", "api_keys", "N1N Gemini max tokens", "number", 43),
    _s("api_geminiN1N_temperature", "", "api_keys", "N1N Gemini temperature", "number", 44),
    _s("api_geminiGoogle_endpoint", "https://generativelanguage.googleapis.com/v1beta", "api_keys", "Google Gemini endpoint", "text", 50),
    _s("api_geminiGoogle_key", "", "api_keys", "Google Gemini API key", "password", 51),
    _s("api_geminiGoogle_model", "gemini-2.0-flash-exp", "api_keys", "Google Gemini model", "text", 52),
    _s("api_geminiGoogle_max_tokens", "", "api_keys", "Google Gemini max tokens", "number", 53),
    _s("api_geminiGoogle_temperature", "", "api_keys", "Google Gemini temperature", "number", 54),
    _s("api_ragic_key", "", "api_keys", "Ragic API key", "password", 60),
    _s("api_ragic_base_url", "", "api_keys", "Ragic sheet URL", "text", 61),
    # --- webhooks ---
    _s("webhook_n8n_ragic_read", "", "webhooks", "Ragic read webhook", "text", 1),
    _s("webhook_n8n_ragic_write", "", "webhooks", "Ragic write webhook", "text", 2),
    _s("webhook_n8n_notification", "", "webhooks", "Notification webhook", "text", 3),
    # --- notifications ---
    _s("notify_via_n8n", "true", "notifications", "Notify via webhook", "boolean", 1),
    _s("notify_via_telegram_direct", "false", "notifications", "Notify via Telegram", "boolean", 2),
    _s("telegram_bot_token", "", "notifications", "Telegram bot token", "password", 10),
    _s("telegram_chat_id", "", "notifications", "Telegram chat id", "text", 11),
    _s("notify_on_success", "true", "notifications", "Notify on success", "boolean", 20),
    _s("notify_on_failure", "true", "notifications", "Notify on failure", "boolean", 21),
    _s("notify_on_pause", "false", "notifications", "Notify on pause", "boolean", 22),
    _s(
        "notify_template_success",
        "<b>Completed</b>\nJob: {name}\nType: {kind}\nDuration: {duration}\nTime: {time}\n\n{steps}",
        "notifications",
        "Success template",
        "textarea",
        30,
    ),
    _s(
        "notify_template_failure",
        "<b>Failed</b>\nJob: {name}\nStep: {step}\nError: {error}\nTime: {time}\n\n{steps}",
        "notifications",
        "Failure template",
        "textarea",
        31,
    ),
    _s(
        "notify_template_pause",
        "<b>Paused</b>\nJob: {name}\nStep: {step}\nTime: {time}\n\n{steps}",
        "notifications",
        "Pause template",
        "textarea",
        32,
    ),
    # --- retry ---
    _s("retry_max_attempts", "3", "retry", "Max attempts per provider", "number", 1),
    _s("retry_delay_ms", "2000", "retry", "Delay between attempts (ms)", "number", 2),
    _s("retry_transcription_order", "whisper147,whisperN1N,assemblyai", "retry", "Transcription provider order", "text", 10),
    _s("retry_ai_order", "gemini147,geminiN1N,geminiGoogle", "retry", "Alignment provider order", "text", 11),
    # --- split rules ---
    _s("split_min_chars", "6", "split_rules", "Min characters", "number", 1),
    _s("split_max_chars_video", "20", "split_rules", "Max characters (video)", "number", 2),
    _s("split_max_chars_voice", "12", "split_rules", "Max characters (voice)", "number", 3),
    _s("split_punctuation", "。！？，、；", "split_rules", "Split punctuation", "text", 4),
    _s("split_remove_trailing_punctuation", "true", "split_rules", "Remove trailing punctuation", "boolean", 5),
    # --- subtitle style ---
    _s("style_font_family", "Noto Sans TC, Microsoft JhengHei, sans-serif", "subtitle_style", "Font", "text", 1),
    _s("style_font_size", "28", "subtitle_style", "Font size (px)", "number", 2),
    _s("style_font_weight", "bold", "subtitle_style", "Font weight", "select", 3, "normal,bold,lighter"),
    _s("style_color_current", "#FFEB3B", "subtitle_style", "Current line color", "color", 10),
    _s("style_color_other", "#FFFFFF", "subtitle_style", "Other lines color", "color", 11),
    _s("style_color_highlight", "#FF5722", "subtitle_style", "Highlight color", "color", 12),
    _s("style_stroke_enabled", "true", "subtitle_style", "Stroke", "boolean", 20),
    _s("style_stroke_color", "#000000", "subtitle_style", "Stroke color", "color", 21),
    _s("style_stroke_width", "2", "subtitle_style", "Stroke width", "number", 22),
    _s("style_shadow_enabled", "true", "subtitle_style", "Shadow", "boolean", 30),
    _s("style_shadow_color", "rgba(0,0,0,0.5)", "subtitle_style", "Shadow color", "text", 31),
    _s("style_shadow_blur", "4", "subtitle_style", "Shadow blur", "number", 32),
    _s("style_position", "bottom", "subtitle_style", "Position", "select", 40, "top,center,bottom"),
    _s("style_margin_bottom", "10", "subtitle_style", "Bottom margin (%)", "number", 41),
    _s("style_line_height", "1.5", "subtitle_style", "Line height", "number", 42),
    _s("style_max_lines", "3", "subtitle_style", "Max visible lines", "number", 43),
    # --- slideshow ---
    _s("slideshow_base_duration", "5", "slideshow", "Base duration (s)", "number", 1),
    _s("slideshow_weight_full", "2.0", "slideshow", "Full weight", "number", 10),
    _s("slideshow_weight_transparent", "2.0", "slideshow", "Transparent weight", "number", 11),
    _s("slideshow_weight_wide", "2.5", "slideshow", "Wide weight", "number", 12),
    _s("slideshow_weight_carousel", "3.3", "slideshow", "Carousel weight", "number", 13),
    _s("slideshow_transition", "fade", "slideshow", "Transition", "select", 20, "fade,slide,zoom,none"),
    _s("slideshow_transition_duration", "0.5", "slideshow", "Transition (s)", "number", 21),
    _s("slideshow_bg_color_1", "#1a1a2e", "slideshow", "Background 1", "color", 30),
    _s("slideshow_bg_color_2", "#16213e", "slideshow", "Background 2", "color", 31),
    _s("slideshow_bg_color_3", "#0f3460", "slideshow", "Background 3", "color", 32),
    # --- background ---
    _s("background_default_type", "color", "background", "Default type", "select", 1, "color,image,gradient,video"),
    _s("background_default_color", "#1a1a2e", "background", "Default color", "color", 2),
    _s("background_default_gradient", "linear-gradient(135deg, #1a1a2e, #16213e)", "background", "Default gradient", "text", 3),
    _s("background_default_image", "", "background", "Default image URL", "text", 4),
    _s("background_default_opacity", "1", "background", "Opacity", "number", 5),
    _s("background_default_blur", "0", "background", "Blur (px)", "number", 6),
    _s("background_default_overlay", "rgba(0,0,0,0.3)", "background", "Overlay color", "text", 7),
    _s("background_overlay_enabled", "true", "background", "Overlay", "boolean", 8),
    # --- regions ---
    _s("regions_list", json.dumps(REGIONS, ensure_ascii=False), "regions", "Regions", "json", 1),
    # --- record store field mapping (video) ---
    _s("ragic_video_field_title", "_ragic_field_1000001", "ragic_video_input", "Title", "text", 1),
    _s("ragic_video_field_artist", "_ragic_field_1000002", "ragic_video_input", "Artist", "text", 2),
    _s("ragic_video_field_audio_url", "_ragic_field_1000003", "ragic_video_input", "Audio URL", "text", 3),
    _s("ragic_video_field_r2_audio_url", "_ragic_field_1000007", "ragic_video_input", "Mirrored audio URL", "text", 4),
    _s("ragic_video_field_lyrics", "_ragic_field_1000004", "ragic_video_input", "Lyrics", "text", 5),
    _s("ragic_video_field_images", "_ragic_field_1000005", "ragic_video_input", "Images", "text", 6),
    _s("ragic_video_field_background", "_ragic_field_1000008", "ragic_video_input", "Background", "text", 7),
    _s("ragic_video_field_region", "_ragic_field_1000006", "ragic_video_input", "Region", "text", 8),
    _s("ragic_video_field_output_json", "_ragic_field_1000010", "ragic_video_output", "Output JSON", "text", 1),
    _s("ragic_video_field_status", "_ragic_field_1000011", "ragic_video_output", "Status", "text", 2),
    _s("ragic_video_field_process_time", "_ragic_field_1000012", "ragic_video_output", "Processing time", "text", 3),
    _s("ragic_video_field_error_msg", "_ragic_field_1000013", "ragic_video_output", "Error", "text", 4),
    # --- record store field mapping (voice) ---
    _s("ragic_voice_field_title", "_ragic_field_2000001", "ragic_voice_input", "Title", "text", 1),
    _s("ragic_voice_field_speaker", "_ragic_field_2000002", "ragic_voice_input", "Speaker", "text", 2),
    _s("ragic_voice_field_audio_url", "_ragic_field_2000003", "ragic_voice_input", "Audio URL", "text", 3),
    _s("ragic_voice_field_merged_audio_url", "_ragic_field_2000006", "ragic_voice_input", "Merged audio URL", "text", 4),
    _s("ragic_voice_field_transcript", "_ragic_field_2000004", "ragic_voice_input", "Transcript", "text", 5),
    _s("ragic_voice_field_image_url", "_ragic_field_2000005", "ragic_voice_input", "Image", "text", 6),
    _s("ragic_voice_field_background", "_ragic_field_2000008", "ragic_voice_input", "Background", "text", 7),
    _s("ragic_voice_field_region", "_ragic_field_2000007", "ragic_voice_input", "Region", "text", 8),
    _s("ragic_voice_field_output_json", "_ragic_field_2000010", "ragic_voice_output", "Output JSON", "text", 1),
    _s("ragic_voice_field_status", "_ragic_field_2000011", "ragic_voice_output", "Status", "text", 2),
    _s("ragic_voice_field_process_time", "_ragic_field_2000012", "ragic_voice_output", "Processing time", "text", 3),
    _s("ragic_voice_field_error_msg", "_ragic_field_2000013", "ragic_voice_output", "Error", "text", 4),
    # --- defaults ---
    _s("default_kind", "video", "defaults", "Default pipeline", "select", 1, "video,voice"),
    _s("default_transcription_api", "whisper147", "defaults", "Preferred transcription provider", "select", 2, "whisper147,whisperN1N,assemblyai"),
    _s("default_matching_api", "gemini147", "defaults", "Preferred alignment provider", "select", 3, "gemini147,geminiN1N,geminiGoogle"),
    _s("default_correction_api", "gemini147", "defaults", "Preferred correction provider", "select", 4, "gemini147,geminiN1N,geminiGoogle"),
    _s("default_auto_correction", "true", "defaults", "Auto correction", "boolean", 5),
    _s("default_auto_upload", "true", "defaults", "Auto write-back to record store", "boolean", 6),
    # --- prompts ---
    _s("prompt_video", VIDEO_PROMPT, "prompts", "Video alignment prompt", "textarea", 1),
    _s("prompt_voice", VOICE_PROMPT, "prompts", "Voice alignment prompt", "textarea", 2),
    _s("prompt_correction", CORRECTION_PROMPT, "prompts", "Correction prompt", "textarea", 3),
]
