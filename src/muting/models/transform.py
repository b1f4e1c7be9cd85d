"""
Transform rule models.

Rules are loaded from YAML shaped as::

    transforms:
      - from: [example.com, example.org]
        to: internal.example.com
"""

from pydantic import BaseModel, Field


class TransformRule(BaseModel):
    """Accepted trailing suffixes and the suffix that replaces them."""

    model_config = {"populate_by_name": True, "frozen": True}

    from_: list[str] = Field(
        default_factory=list,
        alias="from",
        description="Suffixes accepted by this rule, checked in order",
    )
    to: str = Field(..., description="Replacement suffix")

    def __str__(self) -> str:
        return f"{', '.join(self.from_)} => {self.to}"


class TransformRules(BaseModel):
    """Ordered list of transform rules; declaration order is significant."""

    model_config = {"populate_by_name": True, "frozen": True}

    transforms: list[TransformRule] = Field(
        default_factory=list, description="Rules evaluated in declaration order"
    )

    def __str__(self) -> str:
        return "\n".join(str(rule) for rule in self.transforms)
