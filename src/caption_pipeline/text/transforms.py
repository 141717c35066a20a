from __future__ import annotations

import re
from dataclasses import dataclass

_PREFIX_RE = re.compile(r"^(?:轉錄文字|Transcript|字幕|Subtitle|文字稿)[：:]\s*", re.IGNORECASE)
_MARKER_RE = re.compile(r"（<#[0-9.]+#>）|\(<#[0-9.]+#>\)|<#[0-9.]+#>")

_LEN_STRIP_RE = re.compile(r"[，。、；：！？,.;:!?\"'「」『』（）()【】《》〈〉]")
_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")
_WORD_RE = re.compile(r"[a-zA-Z]+")
_TRAILING_RE = re.compile(r"[。！？，、；,.;:!?\"']+$")

_BIG_SPLIT_RE = re.compile(r"([。！？]+)")
_BIG_ONLY_RE = re.compile(r"^[。！？]+$")
_SMALL_SPLIT_RE = re.compile(r"([，、；]+)")
_SMALL_ONLY_RE = re.compile(r"^[，、；]+$")


@dataclass(frozen=True, slots=True)
class SplitRules:
    min_chars: int = 6
    max_chars: int = 20
    remove_trailing: bool = True


def clean_transcript(text: str) -> str:
    """
    Strip a leading "Transcript:" style label and `<#1.5#>` pause markers,
    trim every line and drop blank ones.
    """
    s = _PREFIX_RE.sub("", str(text or ""))
    s = _MARKER_RE.sub("", s)
    lines = [ln.strip() for ln in s.split("\n")]
    return "\n".join(ln for ln in lines if ln)


def display_length(s: str) -> int:
    """Caption length: one unit per CJK character and per latin word."""
    cleaned = _LEN_STRIP_RE.sub("", s)
    return len(_CJK_RE.findall(cleaned)) + len(_WORD_RE.findall(cleaned))


def _strip_trailing(s: str, rules: SplitRules) -> str:
    if not rules.remove_trailing:
        return s.strip()
    return _TRAILING_RE.sub("", s).strip()


def _sentences(paragraph: str) -> list[str]:
    out: list[str] = []
    for piece in _BIG_SPLIT_RE.split(paragraph):
        if not piece.strip():
            continue
        if _BIG_ONLY_RE.match(piece):
            if out:
                out[-1] += piece
        else:
            out.append(piece)
    return out


def _split_long(sentence: str, rules: SplitRules, out: list[str]) -> None:
    max_chars = rules.max_chars
    current = ""
    for part in (p for p in _SMALL_SPLIT_RE.split(sentence) if p.strip()):
        if _SMALL_ONLY_RE.match(part):
            current += part
            continue
        candidate = current + part
        if display_length(candidate) <= max_chars:
            current = candidate
            continue
        if current:
            out.append(_strip_trailing(current, rules))
        current = part
        if display_length(part) > max_chars:
            # no punctuation left to break on: cut character by character
            temp = ""
            for ch in part:
                if display_length(temp + ch) <= max_chars:
                    temp += ch
                else:
                    if temp:
                        out.append(_strip_trailing(temp, rules))
                    temp = ch
            current = temp
    if current:
        out.append(_strip_trailing(current, rules))


def smart_split(text: str, rules: SplitRules) -> str:
    """
    Break a script into caption-sized lines.

    Paragraphs are split on sentence-ending punctuation first; sentences still
    longer than `rules.max_chars` are split on commas, and anything still too
    long is cut by character. Deterministic for a given input and rules.
    """
    s = str(text or "").strip().replace("\r\n", "\n").replace("\r", "\n")
    s = re.sub(r"\n{3,}", "\n\n", s)
    paragraphs = [p for p in re.split(r"\n\n+", s) if p.strip()]

    out: list[str] = []
    for paragraph in paragraphs:
        joined = paragraph.replace("\n", "").strip()
        for sentence in _sentences(joined):
            sentence = sentence.strip()
            if not sentence:
                continue
            if display_length(sentence) <= rules.max_chars:
                out.append(_strip_trailing(sentence, rules))
            else:
                _split_long(sentence, rules, out)
    return "\n".join(out)


IMAGE_BUCKETS = ("full", "transparent", "normal", "wide", "wideCenter")

_TAG_RE = re.compile(r"^\[([^\]]+)\]\s*(.+)$")


def parse_images(images_text: str | None) -> dict[str, list[str]]:
    """
    Sort a tagged image list (`[full] https://...`, `[wide center] ...`) into
    buckets. Untagged http lines and unknown tags go to `full`.
    """
    images: dict[str, list[str]] = {k: [] for k in IMAGE_BUCKETS}
    for line in str(images_text or "").split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue
        m = _TAG_RE.match(trimmed)
        if m:
            tag = m.group(1).lower()
            url = m.group(2).strip()
            if "full" in tag or "滿版" in tag:
                images["full"].append(url)
            elif "transparent" in tag or "透明" in tag:
                images["transparent"].append(url)
            elif "wide" in tag and ("center" in tag or "中" in tag):
                images["wideCenter"].append(url)
            elif "wide" in tag or "寬" in tag:
                images["wide"].append(url)
            elif "normal" in tag or "普通" in tag:
                images["normal"].append(url)
            else:
                images["full"].append(url)
        elif trimmed.startswith("http"):
            images["full"].append(trimmed)
    return images
