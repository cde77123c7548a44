"""Identifier helpers and the enrolled record entity."""
import re
from datetime import datetime
from typing import List, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

IDENTIFIER_LENGTH = 7
IDENTIFIER_MARKER = "4"

_NON_DIGITS = re.compile(r"\D")
_CANONICAL = re.compile(r"^\d{7}$")


def canonicalize_identifier(value: object) -> str:
    """Strip everything but digits from an identifier-like value."""
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def is_canonical_identifier(value: str) -> bool:
    """Whether ``value`` is exactly 7 ASCII digits."""
    return bool(_CANONICAL.match(value or ""))


def has_year_marker(value: str) -> bool:
    """Whether a canonical identifier carries the literal ``4`` after its year digits."""
    return is_canonical_identifier(value) and value[2] == IDENTIFIER_MARKER


def format_display_id(value: object) -> str:
    """Render a canonical identifier as ``YY-4-####``.

    Inputs that are not 7 digits after canonicalization are returned as digits only.
    """
    digits = canonicalize_identifier(value)
    if len(digits) != IDENTIFIER_LENGTH:
        return digits
    return f"{digits[:2]}-{digits[2:3]}-{digits[3:]}"


class EnrolledRecord(BaseModel):
    """An enrolled identity as published by the registration workflow.

    Records are read-only to the verification core.
    """
    identifier: str = Field(..., description="Canonical 7-digit identifier")
    display_id: str = Field("", description="Identifier rendered as YY-4-####")
    name: str = Field("", description="Full name")
    department: str = Field("", description="Organisational unit")
    year: str = Field("", description="Enrollment cohort")
    email: str = Field("", description="Contact address")
    face_images: List[str] = Field(default_factory=list, description="Reference face image locations")
    reference_descriptors: List[np.ndarray] = Field(
        default_factory=list, description="Precomputed reference face descriptors"
    )
    created_at: Optional[datetime] = Field(None, description="Registration timestamp")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("identifier", mode="before")
    @classmethod
    def validate_identifier(cls, v: object) -> str:
        return canonicalize_identifier(v)

    @field_validator("reference_descriptors", mode="before")
    @classmethod
    def validate_descriptors(cls, v: Optional[List[Union[np.ndarray, list]]]) -> List[np.ndarray]:
        """Convert stored descriptor lists to float arrays."""
        if not v:
            return []
        return [np.asarray(d, dtype=np.float64) for d in v]

    @property
    def id_number(self) -> str:
        """The globally unique trailing 4-digit sequence."""
        return self.identifier[-4:]
