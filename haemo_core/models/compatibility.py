"""
Blood-type compatibility graph.

Edges point from donor type to the recipient types it can safely supply.
"""

from typing import Dict, List

from ..config import BLOOD_TYPES

DONOR_TO_RECIPIENTS: Dict[str, List[str]] = {
    "O-": ["O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"],
    "O+": ["O+", "A+", "B+", "AB+"],
    "A-": ["A-", "A+", "AB-", "AB+"],
    "A+": ["A+", "AB+"],
    "B-": ["B-", "B+", "AB-", "AB+"],
    "B+": ["B+", "AB+"],
    "AB-": ["AB-", "AB+"],
    "AB+": ["AB+"],
}


def is_valid_blood_type(blood_type: str) -> bool:
    return blood_type in DONOR_TO_RECIPIENTS


def can_donate(donor_type: str, recipient_type: str) -> bool:
    return recipient_type in DONOR_TO_RECIPIENTS.get(donor_type, [])


def compatible_donor_types(recipient_type: str) -> List[str]:
    """
    Donor types that can supply the given recipient type.

    Derived from the graph, never listed separately, so the two views cannot drift.
    Unknown recipient types have no compatible donors.
    """
    return [
        donor_type
        for donor_type in BLOOD_TYPES
        if recipient_type in DONOR_TO_RECIPIENTS[donor_type]
    ]
