"""BOM schema definitions: column role vocabulary and table layout constants."""

import re
from typing import Dict, List, Pattern, Tuple

# Literal header inserted between the parent and child sides of an expanded row
LEVEL_HEADER = "Level"

# Header row must appear within this many leading rows of the raw table
HEADER_SCAN_LIMIT = 20

# Number of data rows shown to a user picking columns by hand
SAMPLE_ROW_LIMIT = 5

# Header candidate thresholds
MIN_HEADER_CELLS = 3
MIN_TEXT_RATIO = 0.4

# Column roles, in the order they are resolved
PARENT = "parent"
CHILD = "child"
QUANTITY = "quantity"
ROLES = (PARENT, CHILD, QUANTITY)

# Precise header vocabulary for each role. Each entry must match the whole
# trimmed header; whitespace between words is optional.
ROLE_PATTERNS: Dict[str, List[str]] = {
    PARENT: [
        r"sku",
        r"sku\s*\(sfg/fg\)",
        r"product\s*sku",
        r"parent\s*sku",
        r"parent\s*item",
        r"parent\s*code",
        r"parent",
        r"item\s*code",
        r"item\s*number",
        r"item\s*no\.?",
        r"part\s*number",
        r"part\s*no\.?",
        r"product\s*code",
        r"product\s*number",
        r"product\s*id",
        r"material\s*code",
        r"material\s*number",
        r"material",
        r"fg\s*code",
        r"sfg\s*code",
        r"finished\s*goods",
        r"semi[\-\s]?finished\s*goods",
        r"assembly",
        r"assembly\s*code",
        r"bom\s*parent",
    ],
    CHILD: [
        r"child\s*sku",
        r"child\s*item",
        r"child\s*code",
        r"child",
        r"component\s*sku",
        r"component",
        r"component\s*code",
        r"component\s*number",
        r"component\s*id",
        r"raw\s*material",
        r"rm\s*code",
        r"rm\s*sku",
        r"sub[\-\s]?component",
        r"material\s*child",
        r"item\s*child",
        r"bom\s*component",
        r"bom\s*item",
    ],
    QUANTITY: [
        r"qty",
        r"quantity",
        r"qty\s*per",
        r"qty\s*per\s*unit",
        r"qty\s*per\s*parent",
        r"qty\s*required",
        r"quantity\s*per",
        r"quantity\s*required",
        r"bom\s*qty",
        r"bom\s*quantity",
        r"usage",
        r"usage\s*qty",
        r"usage\s*quantity",
        r"unit\s*qty",
        r"amount",
        r"count",
        r"pieces",
        r"pcs",
    ],
}

# Broader substrings tried when no precise pattern matches
ROLE_KEYWORDS: Dict[str, List[str]] = {
    PARENT: ["sku", "parent", "product", "item", "material"],
    CHILD: ["child", "component", "rm", "raw"],
    QUANTITY: ["qty", "quantity", "usage", "amount"],
}


def compile_role_patterns() -> Tuple[Tuple[str, Tuple[Pattern, ...]], ...]:
    """Compile ROLE_PATTERNS into an ordered (role, patterns) table.

    Returns:
        Tuple of (role, compiled patterns) pairs in resolution order
    """
    return tuple(
        (role, tuple(re.compile(rf"^{p}$", re.IGNORECASE) for p in ROLE_PATTERNS[role]))
        for role in ROLES
    )


COMPILED_ROLE_PATTERNS = compile_role_patterns()
