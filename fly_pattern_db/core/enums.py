"""Enums for fly pattern and pipeline fields."""

from __future__ import annotations

from enum import Enum


class MaterialType(str, Enum):
    """Closed set of material slots a pattern recipe can use."""

    HOOK = "hook"
    THREAD = "thread"
    TAIL = "tail"
    BODY = "body"
    RIB = "rib"
    THORAX = "thorax"
    WING = "wing"
    HACKLE = "hackle"
    BEAD = "bead"
    WEIGHT = "weight"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: str | MaterialType | None) -> MaterialType:
        """Map a free-form type string onto the enum, falling back to OTHER."""
        if isinstance(value, MaterialType):
            return value
        if value is None:
            return cls.OTHER
        key = " ".join(str(value).lower().replace("_", " ").replace("-", " ").split())
        if not key:
            return cls.OTHER
        try:
            return cls(key)
        except ValueError:
            pass
        mapped = MATERIAL_TYPE_ALIASES.get(key)
        if mapped is not None:
            return cls(mapped)
        # "olive chenille body" style strings: try the last word
        last = key.split()[-1]
        if last in cls._value2member_map_:
            return cls(last)
        return cls(MATERIAL_TYPE_ALIASES.get(last, cls.OTHER.value))


# Free-form type strings seen in extracted recipes -> canonical MaterialType value
MATERIAL_TYPE_ALIASES: dict[str, str] = {
    # Hook
    "hooks": "hook",
    # Thread
    "tying thread": "thread",
    "threads": "thread",
    "head": "thread",
    # Tail
    "tails": "tail",
    "shuck": "tail",
    "trailing shuck": "tail",
    "tailing": "tail",
    # Body
    "dubbing": "body",
    "chenille": "body",
    "herl": "body",
    "floss": "body",
    "abdomen": "body",
    "underbody": "body",
    "overbody": "body",
    "body material": "body",
    # Rib
    "wire": "rib",
    "tinsel": "rib",
    "ribbing": "rib",
    "ribs": "rib",
    # Thorax
    "thorax dubbing": "thorax",
    # Wing
    "wings": "wing",
    "wingcase": "wing",
    "wing case": "wing",
    "post": "wing",
    "parachute post": "wing",
    "shellback": "wing",
    # Hackle
    "throat": "hackle",
    "collar": "hackle",
    "beard": "hackle",
    "hackles": "hackle",
    "legs hackle": "hackle",
    # Bead
    "beads": "bead",
    "bead head": "bead",
    "beadhead": "bead",
    "cone": "bead",
    "cone head": "bead",
    # Weight
    "lead": "weight",
    "lead wire": "weight",
    "weighting": "weight",
    "lead free wire": "weight",
    # Other
    "eyes": "other",
    "legs": "other",
    "rubber legs": "other",
    "flash": "other",
    "antennae": "other",
    "misc": "other",
}


class FlyCategory(str, Enum):
    """Fly category classification."""

    DRY = "dry"
    NYMPH = "nymph"
    STREAMER = "streamer"
    EMERGER = "emerger"
    SALTWATER = "saltwater"
    OTHER = "other"


class Difficulty(str, Enum):
    """Tying difficulty."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class WaterType(str, Enum):
    """Water type a pattern is fished in."""

    FRESHWATER = "freshwater"
    SALTWATER = "saltwater"
    BOTH = "both"


class SubstitutionType(str, Enum):
    """Why a substitute material is offered."""

    EQUIVALENT = "equivalent"
    BUDGET = "budget"
    AESTHETIC = "aesthetic"
    AVAILABILITY = "availability"


class SourceType(str, Enum):
    """Kind of staged source."""

    YOUTUBE = "youtube"
    BLOG = "blog"
    PDF = "pdf"


class ResourceType(str, Enum):
    """Kind of production resource attached to a pattern."""

    VIDEO = "video"
    BLOG = "blog"
    PDF = "pdf"


class SourceStatus(str, Enum):
    """Pipeline status of a staged source."""

    DISCOVERED = "discovered"
    SCRAPED = "scraped"
    EXTRACTED = "extracted"
    FAILED = "failed"


class ExtractionStatus(str, Enum):
    """Pipeline status of a staged extraction."""

    EXTRACTED = "extracted"
    NORMALIZED = "normalized"
    APPROVED = "approved"
    REJECTED = "rejected"
    INGESTED = "ingested"


# Substring hints for materials referenced only by name (substitutions,
# variation swaps). Checked in order; first hit wins.
MATERIAL_NAME_HINTS: list[tuple[tuple[str, ...], str]] = [
    (("hook",), "hook"),
    (("thread",), "thread"),
    (("tail", "fiber"), "tail"),
    (("dubbing", "chenille", "herl", "body"), "body"),
    (("rib", "wire", "tinsel"), "rib"),
    (("thorax",), "thorax"),
    (("wing", "elk", "cdc", "deer"), "wing"),
    (("hackle",), "hackle"),
    (("bead",), "bead"),
    (("lead", "weight"), "weight"),
]


def guess_material_type(name: str) -> MaterialType:
    """Guess a material's type from words in its name."""
    lower = name.lower()
    for needles, value in MATERIAL_NAME_HINTS:
        if any(needle in lower for needle in needles):
            return MaterialType(value)
    return MaterialType.OTHER
