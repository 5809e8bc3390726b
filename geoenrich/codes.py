"""BBR code tables translated to renderer (OSM-style) tag values."""

from typing import Dict, Optional

# byg032YdervaeggensMateriale -> building:colour (hex, renderer parses it)
WALL_MATERIAL_COLOURS = {
    1: "#b5451b",   # Mursten (brick): Danish red/brown brick
    2: "#c8c0b8",   # Letbeton (lightweight concrete)
    3: "#b0b0b0",   # Fibercement
    4: "#c8a050",   # Bindingsværk (timber frame): ochre
    5: "#a07040",   # Træ (wood)
    6: "#909090",   # Beton (concrete)
    7: "#d8c8a0",   # Natursten (natural stone): sandstone
    8: "#808890",   # Metal
    10: "#d0e8f0",  # Glas
    11: "#e8e0d0",  # Kalksandsten (calcium silicate)
    12: "#f0e8d0",  # Puds (render)
}

# byg033Tagdaekningsmateriale -> roof:shape / roof:material
ROOF_TAGS = {
    1: {"roof:shape": "flat"},                              # Built-up
    2: {"roof:shape": "flat"},                              # Tagpap (felt)
    3: {"roof:shape": "gabled"},                            # Fibercement
    4: {"roof:shape": "gabled", "roof:material": "tile"},   # Cementsten
    5: {"roof:shape": "gabled", "roof:material": "tile"},   # Tegl
    6: {"roof:shape": "gabled", "roof:material": "metal"},
    7: {"roof:shape": "hipped", "roof:material": "thatch"},  # Stråtag
    10: {"roof:material": "glass"},
    11: {"roof:shape": "flat"},                             # PVC
    12: {"roof:shape": "hipped", "roof:material": "slate"},  # Skifer
    20: {"roof:shape": "flat"},                             # Green roof
}

# byg021BygningensAnvendelse: single codes first, then inclusive ranges
_USE_CODES = {
    110: "house",               # Stuehus (farmhouse)
    120: "house",               # Detached single-family
    121: "semidetached_house",
    130: "apartments",          # Terraced
    131: "apartments",
    132: "apartments",
    140: "apartments",          # Etagebolig
    150: "residential",         # Kollegium
    160: "residential",         # Døgninstitution
    585: "church",
    930: "shed",                # Udhus
    940: "garage",
    950: "shed",                # Anneks
}

_USE_RANGES = [
    (185, 190, "residential"),
    (310, 319, "commercial"),
    (320, 329, "office"),
    (330, 339, "hotel"),
    (340, 349, "commercial"),
    (350, 359, "retail"),
    (360, 369, "commercial"),
    (370, 379, "commercial"),
    (390, 399, "commercial"),
    (410, 419, "industrial"),
    (420, 429, "industrial"),
    (430, 439, "warehouse"),
    (440, 449, "industrial"),
    (510, 519, "school"),
    (520, 529, "university"),
    (530, 539, "hospital"),
    (540, 549, "public"),       # Daycare
    (550, 559, "school"),
    (590, 599, "public"),
    (610, 619, "public"),
    (620, 629, "public"),
    (710, 719, "industrial"),   # Energy
    (720, 729, "industrial"),   # Water/sewage
    (910, 919, "farm"),
    (920, 929, "farm_auxiliary"),
]


def wall_material_colour(code: int) -> Optional[str]:
    return WALL_MATERIAL_COLOURS.get(code)


def roof_tags(code: int) -> Dict[str, str]:
    """Roof tags for a roof material code; empty for unknown codes."""
    return dict(ROOF_TAGS.get(code, {}))


def building_type(code: int) -> Optional[str]:
    if code in _USE_CODES:
        return _USE_CODES[code]
    for lo, hi, value in _USE_RANGES:
        if lo <= code <= hi:
            return value
    return None
