"""
Prompt text for item analysis and composite estimation.

Each builder returns the user prompt; the expected JSON shape is appended
by the provider from the schema hint. Text values are requested in the
language of the input so Korean diaries get Korean analyses.
"""

from typing import Optional

from .types import AggregationSnapshot, Category, EmotionEstimate, Profile, TypeEstimate

# Long documents are truncated before prompting
MAX_CONTENT_CHARS = 20000

LANGUAGE_RULE = "Write every text value in the same language as the input."

ITEM_SYSTEM_PROMPT = (
    "You are an expert analyst. Analyze the user's content and respond "
    "with a single structured JSON object."
)

ESTIMATE_SYSTEM_PROMPT = (
    "You are an experienced counseling psychologist. Base every judgement "
    "only on the data provided and respond with a single JSON object."
)

_DIARY_PROMPT = """Analyze the following diary entry.

{content}

Identify:
1. emotions: the emotions the writer expresses
2. main_events: the main events of the day
3. relationships: people and relationships that appear
4. interests: interests and hobbies revealed by the entry
5. psychological_state: a short summary of the writer's state of mind
6. insights: an overall insight about the writer

{rule}"""

_NOTE_PROMPT = """Analyze the following note.

{content}

Identify:
1. topics: the main topics
2. categories: what kind of note this is (study, work, idea, ...)
3. interests: fields of interest the note reveals
4. plans: goals or plans mentioned
5. thinking_style: how the writer thinks and organizes ideas
6. insights: an overall insight about the writer

{rule}"""

_OTHER_PROMPT = """Analyze the following text.

{content}

Identify the main topics, the keywords, a short summary and any insight
about the writer.

{rule}"""

_IMAGE_PROMPT = """Analyze the attached image uploaded by a user.

Describe:
1. description: what the image shows
2. mood: the overall mood, as one short word or phrase
3. inferred_interests: interests of the user that the image suggests
4. keywords: keywords for the image
5. additional_insights: anything else the image says about the user

{rule}"""


def _truncate(content: str) -> str:
    if len(content) > MAX_CONTENT_CHARS:
        return content[:MAX_CONTENT_CHARS]
    return content


def item_prompt(category: Category, content: str) -> str:
    """Prompt for one item. Images are attached separately, not embedded."""
    if category is Category.DIARY:
        template = _DIARY_PROMPT
    elif category is Category.NOTE:
        template = _NOTE_PROMPT
    elif category is Category.OTHER:
        template = _OTHER_PROMPT
    elif category is Category.IMAGE:
        return _IMAGE_PROMPT.format(rule=LANGUAGE_RULE)
    else:
        raise ValueError(f"No prompt for category: {category!r}")
    return template.format(content=_truncate(content), rule=LANGUAGE_RULE)


# -----------------------------------------------------------------------------
# Composite estimates
# -----------------------------------------------------------------------------

def _ranked(pairs: list[tuple[str, int]]) -> str:
    if not pairs:
        return "(none)"
    return ", ".join(f"{name} ({count})" for name, count in pairs)


def snapshot_text(snapshot: AggregationSnapshot) -> str:
    categories = ", ".join(
        f"{name}: {count}" for name, count in snapshot.category_counts.items()
    ) or "(none)"
    return (
        f"Analyzed items: {snapshot.item_count} ({categories})\n"
        f"Top interests: {_ranked(snapshot.interests)}\n"
        f"Top keywords: {_ranked(snapshot.keywords)}\n"
        f"Frequent moods: {_ranked(snapshot.moods)}"
    )


def _profile_block(profile: Optional[Profile]) -> str:
    text = profile.as_text() if profile else ""
    return text or "(no profile provided)"


TYPE_SCHEMA_HINT = {
    "axes": {
        "EI": {"score": 50, "rationale": "..."},
        "SN": {"score": 50, "rationale": "..."},
        "TF": {"score": 50, "rationale": "..."},
        "JP": {"score": 50, "rationale": "..."},
    },
    "confidence": 70,
    "description": "...",
    "characteristics": ["..."],
    "suitable_careers": ["..."],
    "suitable_environments": ["..."],
    "growth_suggestions": ["..."],
}


def type_prompt(profile: Optional[Profile], snapshot: AggregationSnapshot) -> str:
    return f"""Estimate this person's four-letter personality type from the data below.

[Profile]
{_profile_block(profile)}

[Analyzed content]
{snapshot_text(snapshot)}

Score each axis from 0 to 100:
- EI: 100 = strongly Extraverted (E), 0 = strongly Introverted (I)
- SN: 100 = strongly Sensing (S), 0 = strongly Intuitive (N)
- TF: 100 = strongly Thinking (T), 0 = strongly Feeling (F)
- JP: 100 = strongly Judging (J), 0 = strongly Perceiving (P)
Give a one or two sentence rationale per axis, an overall confidence
(0-100) that reflects how much data there is, a description of the type,
characteristics, suitable careers, suitable environments and growth
suggestions.

{LANGUAGE_RULE}"""


EMOTION_SCHEMA_HINT = {
    "primary_emotions": ["..."],
    "emotion_patterns": ["..."],
    "positive_negative_ratio": {"positive": 60, "negative": 40},
    "stability_score": 70,
    "health_score": 75,
    "concerns": ["..."],
    "suggestions": ["..."],
}

# Entries beyond this are left out of the prompt
MAX_EMOTION_LINES = 50


def emotion_prompt(
    document_emotions: list[tuple[str, str, list[str]]],
    image_moods: list[tuple[str, str]],
) -> str:
    """
    Args:
        document_emotions: (date, category, emotions) per text item
        image_moods: (date, mood) per image item
    """
    lines = ["Analyze this person's emotional data as a whole.", ""]
    if document_emotions:
        lines.append("[Emotions from documents]")
        for date, category, emotions in document_emotions[:MAX_EMOTION_LINES]:
            lines.append(f"- date: {date[:10]}, emotions: {', '.join(emotions)}, type: {category}")
        lines.append("")
    if image_moods:
        lines.append("[Moods from images]")
        for date, mood in image_moods[:MAX_EMOTION_LINES]:
            lines.append(f"- date: {date[:10]}, mood: {mood}")
        lines.append("")
    lines.extend([
        "Report:",
        "1. primary emotions, most frequent first",
        "2. how emotions change over time",
        "3. positive and negative ratios (0-100 each, independent, need not sum to 100)",
        "4. emotional stability (0-100, high = steady, low = volatile)",
        "5. emotional patterns that need attention (anxiety, depression, ...)",
        "6. an overall emotional health score (0-100)",
        "7. suggestions for improvement",
        "",
        LANGUAGE_RULE,
    ])
    return "\n".join(lines)


REPORT_SCHEMA_HINT = {
    "title": "...",
    "summary": "...",
    "personality": "...",
    "strengths": ["..."],
    "improvements": ["..."],
    "career_suggestions": ["..."],
    "lifestyle_recommendations": ["..."],
    "relationship_style": "...",
    "growth_roadmap": ["step 1", "step 2"],
    "cautions": ["..."],
}


def report_prompt(
    profile: Optional[Profile],
    snapshot: AggregationSnapshot,
    type_estimate: Optional[TypeEstimate],
    emotion_estimate: Optional[EmotionEstimate],
) -> str:
    sections = [
        "Write a personal insight report from the data below.",
        "",
        "[Profile]",
        _profile_block(profile),
        "",
        "[Analyzed content]",
        snapshot_text(snapshot),
    ]
    if type_estimate is not None:
        axes = ", ".join(f"{a.axis}={a.score:.0f}" for a in type_estimate.axes)
        sections += [
            "",
            "[Personality type estimate]",
            f"{type_estimate.type_code} (confidence {type_estimate.confidence:.0f}; {axes})",
        ]
        if type_estimate.description:
            sections.append(type_estimate.description)
    if emotion_estimate is not None:
        sections += [
            "",
            "[Emotional health]",
            f"health {emotion_estimate.health_score:.0f}, "
            f"stability {emotion_estimate.stability_score:.0f}, "
            f"positive {emotion_estimate.positive_ratio:.0f}, "
            f"negative {emotion_estimate.negative_ratio:.0f}",
            f"primary emotions: {', '.join(emotion_estimate.primary_emotions) or '(none)'}",
        ]
    sections += [
        "",
        "Include a summary, a personality description, strengths, areas to "
        "improve, career suggestions, lifestyle recommendations, relationship "
        "style, an ordered growth roadmap and cautions.",
        "",
        LANGUAGE_RULE,
    ]
    return "\n".join(sections)
