"""Prompt templates and tool schema for pattern extraction."""

from fly_pattern_db.core.enums import (
    Difficulty,
    FlyCategory,
    MaterialType,
    SourceType,
    SubstitutionType,
    WaterType,
)

PROMPT_VERSION = "1.0"

DEFAULT_MAX_CONTENT_CHARS = 12000

EXTRACTION_TOOL_NAME = "extract_pattern"

SYSTEM_PROMPT = """You are an expert fly tying pattern analyst. Your job is to extract structured data from fly tying content (video transcripts, blog posts, tutorials).

You have deep knowledge of fly tying, including:

MATERIAL TYPES (use exactly these categories):
- hook: The fishing hook the fly is tied on (e.g., "Tiemco TMC 100", "Mustad 9672")
- thread: The tying thread (e.g., "Uni-Thread 6/0", "Veevus 8/0")
- tail: Tail material (e.g., "Pheasant Tail Fibers", "Marabou")
- body: Body material (e.g., "Chenille", "Dubbing", "Peacock Herl")
- rib: Ribbing material (e.g., "Copper Wire", "Tinsel")
- thorax: Thorax material (e.g., "Dubbing", "Peacock Herl")
- wing: Wing material (e.g., "Elk Hair", "CDC Feathers", "Hen Hackle Tips")
- hackle: Hackle feathers (e.g., "Grizzly Rooster Hackle", "Brown Hackle")
- bead: Bead heads (e.g., "Brass Bead", "Tungsten Bead")
- weight: Additional weight (e.g., "Lead Wire", "Lead-Free Wire")
- other: Anything else (e.g., "Eyes", "Rubber Legs", "Flash Material")

FLY CATEGORIES:
- dry: Floats on surface, imitates adult insects
- nymph: Fished subsurface, imitates larval/pupal stage insects
- streamer: Larger flies imitating baitfish, leeches, crayfish
- emerger: Imitates insects transitioning from subsurface to surface
- saltwater: Patterns for saltwater species
- other: Anything else

DIFFICULTY:
- beginner: Simple wraps, basic materials, 5 or fewer materials
- intermediate: Multiple techniques, moderate material count
- advanced: Complex techniques, many materials, precise proportions required

WATER TYPE:
- freshwater: Trout streams, rivers, lakes
- saltwater: Ocean, flats, inshore
- both: Works in both environments

IMPORTANT EXTRACTION RULES:
1. List materials in TYING ORDER (the order they would be applied when tying the fly)
2. Standard tying order is: hook, thread, tail, body/rib, thorax, wing, hackle, head
3. Mark materials as required=true unless explicitly described as "optional" or "you can add"
4. Include specific product names when mentioned (e.g., "Tiemco TMC 100" not just "dry fly hook")
5. Include colors and sizes when specified
6. If a material is mentioned as a substitute for another, include it in the substitutions array
7. If variations of the pattern are described, include them
8. Extract the origin/history of the pattern if mentioned
9. Write a clear, informative description even if the source is informal/conversational
10. For the pattern name, use the canonical/most common name
11. If the content walks through the tie, summarize each step in tying_steps"""


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


EXTRACTION_TOOL = {
    "name": EXTRACTION_TOOL_NAME,
    "description": (
        "Extract structured fly pattern data from fly tying content. "
        "Call this tool with the extracted information."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "pattern_name": {
                "type": "string",
                "description": (
                    'The canonical name of the fly pattern (e.g., "Woolly Bugger", "Adams"). '
                    "Empty string if no pattern found."
                ),
            },
            "alternate_names": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Other names this pattern is known by",
            },
            "category": {"type": "string", "enum": _values(FlyCategory), "description": "The fly category"},
            "difficulty": {"type": "string", "enum": _values(Difficulty), "description": "Difficulty level to tie"},
            "water_type": {
                "type": "string",
                "enum": _values(WaterType),
                "description": "What type of water the fly is used in",
            },
            "description": {
                "type": "string",
                "description": "A clear 2-4 sentence description of the pattern, what it imitates, and how to fish it",
            },
            "origin": {"type": ["string", "null"], "description": "Who created the pattern and when, if mentioned"},
            "materials": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": "Full material name including brand if mentioned (e.g., 'Tiemco TMC 100 Dry Fly Hook')",
                        },
                        "type": {"type": "string", "enum": _values(MaterialType), "description": "Material type category"},
                        "color": {"type": ["string", "null"], "description": "Color if specified"},
                        "size": {
                            "type": ["string", "null"],
                            "description": "Size or size range if specified (e.g., 'Size 12-16', '3/32 inch')",
                        },
                        "required": {"type": "boolean", "description": "true if the material is essential, false if optional"},
                        "position": {"type": "number", "description": "Order in tying sequence (1 = first)"},
                    },
                    "required": ["name", "type", "color", "size", "required", "position"],
                },
                "description": "Materials list in tying order",
            },
            "variations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Name of the variation"},
                        "description": {"type": "string", "description": "What makes this variation different"},
                        "material_changes": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "original": {"type": "string", "description": "Material being replaced"},
                                    "replacement": {"type": "string", "description": "Replacement material"},
                                },
                                "required": ["original", "replacement"],
                            },
                        },
                    },
                    "required": ["name", "description", "material_changes"],
                },
                "description": "Named variations of this pattern mentioned in the content",
            },
            "substitutions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "original_material": {"type": "string", "description": "The original/standard material"},
                        "substitute_material": {"type": "string", "description": "The substitute material"},
                        "substitution_type": {
                            "type": "string",
                            "enum": _values(SubstitutionType),
                            "description": "Why one would substitute",
                        },
                        "notes": {"type": "string", "description": "Any notes about the substitution"},
                    },
                    "required": ["original_material", "substitute_material", "substitution_type", "notes"],
                },
                "description": "Material substitutions mentioned in the content",
            },
            "tying_steps": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "position": {"type": "number", "description": "Step number (1 = first)"},
                        "title": {"type": "string", "description": "Short step title"},
                        "instruction": {"type": "string", "description": "What to do in this step"},
                        "tip": {"type": ["string", "null"], "description": "Optional tip for this step"},
                    },
                    "required": ["position", "title", "instruction"],
                },
                "description": "Tying instructions in order, if the content describes them",
            },
        },
        "required": [
            "pattern_name",
            "alternate_names",
            "category",
            "difficulty",
            "water_type",
            "description",
            "origin",
            "materials",
            "variations",
            "substitutions",
        ],
    },
}


def build_extraction_prompt(
    pattern_query: str,
    content: str,
    source_type: SourceType | str = SourceType.BLOG,
    max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS,
) -> str:
    """
    Build the user prompt for extracting a pattern from content.

    Args:
        pattern_query: The search term the content was found with
        content: Scraped source text, truncated to max_content_chars
        source_type: Kind of source, used to label the content
        max_content_chars: Truncation limit for the content

    Returns:
        The formatted prompt string
    """
    source_type = SourceType(source_type)
    source_label = {
        SourceType.YOUTUBE: "video transcript",
        SourceType.PDF: "PDF document",
    }.get(source_type, "blog article")

    return f"""Extract the fly pattern data from this {source_label}. The content was found by searching for "{pattern_query}".

If the content does not actually describe a fly tying pattern or recipe, set pattern_name to "" and leave other fields empty.

Content:
---
{content[:max_content_chars]}
---

Extract the structured fly pattern data using the {EXTRACTION_TOOL_NAME} tool."""
