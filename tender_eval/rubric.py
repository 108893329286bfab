"""
Rubric templates - reusable criterion sets validated with Pydantic.

A rubric file looks like::

    name: default
    criteria:
      - id: technical
        name: Technical Merit
        weight: 30
        min_score: 0
        max_score: 100
      ...

Weights must sum to 100, exactly like the criteria attached to a tender.
"""

from __future__ import annotations

from pathlib import Path

import pydantic
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from tender_eval.domain.models import WEIGHT_TOTAL, Criterion, validate_criteria
from tender_eval.errors import ValidationError


class CriterionConfig(BaseModel):
    """One rubric line."""
    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    weight: float = Field(..., ge=0, le=WEIGHT_TOTAL)
    min_score: float = Field(default=0.0)
    max_score: float = Field(default=100.0)

    @model_validator(mode="after")
    def check_range(self) -> "CriterionConfig":
        if self.min_score >= self.max_score:
            raise ValueError(
                f"min_score ({self.min_score}) must be below max_score ({self.max_score})"
            )
        return self

    def to_criterion(self) -> Criterion:
        return Criterion(
            id=self.id,
            name=self.name,
            weight=self.weight,
            min_score=self.min_score,
            max_score=self.max_score,
        )


class Rubric(BaseModel):
    model_config = {"frozen": True}

    name: str = Field(default="custom", min_length=1)
    criteria: list[CriterionConfig] = Field(..., min_length=1)

    @field_validator("criteria")
    @classmethod
    def weights_sum_to_total(cls, v: list[CriterionConfig]) -> list[CriterionConfig]:
        validate_criteria(c.to_criterion() for c in v)
        return v

    def to_criteria(self) -> list[Criterion]:
        return [c.to_criterion() for c in self.criteria]

    @classmethod
    def from_yaml(cls, filepath: str | Path) -> "Rubric":
        filepath = Path(filepath)
        if not filepath.exists():
            raise ValidationError(f"rubric file not found: {filepath}")

        with open(filepath, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if not isinstance(data, dict):
            raise ValidationError(f"rubric file must contain a mapping: {filepath}")

        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid rubric {filepath}: {exc}") from exc


def default_rubric() -> Rubric:
    return Rubric(
        name="default",
        criteria=[
            CriterionConfig(id="technical", name="Technical Merit", weight=30),
            CriterionConfig(id="financial", name="Financial Proposal", weight=25),
            CriterionConfig(id="experience", name="Experience", weight=20),
            CriterionConfig(id="timeline", name="Delivery Timeline", weight=15),
            CriterionConfig(id="sustainability", name="Sustainability", weight=10),
        ],
    )
