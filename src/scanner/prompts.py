"""
CardScan — Vision Prompts

Every prompt asks for a bare JSON object. Replies still arrive fenced often
enough that all of them go through strip_code_fences().
"""

from __future__ import annotations

CARD_SCAN_PROMPT = (
    "Extract card data from ALL images provided (front, and back if present). "
    "Return ONLY a JSON object with these keys: "
    '{"player": <string>, "year": <integer>, "set_name": <string>, '
    '"card_number": <string>, "parallel": <string, "Base" if none>, '
    '"is_autographed": <boolean>, "numbered": <boolean>, '
    '"serial_number": <string|null>, "numbered_to": <string|null>, '
    '"team": <string>, "sport": <string>, "condition": <string>, '
    '"is_graded": <boolean>, "grading_company": <string|null>, '
    '"grade": <string|null>, "cert_number": <string|null>} '
    "The parallel must be the variant name only, never the player or card number. "
    "No other text."
)

MULTI_SLAB_PROMPT = (
    "Detect MULTIPLE graded slabs in this image. "
    'Return ONLY a JSON object: {"cards": [<card>, ...]} where each card uses the keys '
    '"player", "year", "set_name", "card_number", "parallel", "is_autographed", '
    '"grading_company", "grade", "cert_number". '
    "List slabs left to right, top to bottom. No other text."
)

SLAB_POSITION_PROMPT = (
    "Detect the position of every graded slab in this image. "
    'Return ONLY a JSON object: {"slabs": [{"boundingBox": {"x": <number>, "y": <number>, '
    '"width": <number>, "height": <number>}, "gradingCompany": <string|null>}]} '
    "Coordinates are percentages of the image width and height. No other text."
)

CERT_NUMBER_PROMPT = (
    "Extract the CERTIFICATION NUMBER from this slab label. "
    'Return ONLY a JSON object: {"cert_number": <string|null>, '
    '"grading_company": <string|null>, "grade": <string|null>} '
    "Use null for anything you cannot read with certainty. No other text."
)
