"""Pydantic models for the image prediction endpoint."""

from typing import List

from pydantic import BaseModel, Field

from .base import BaseResponse


class PredictionItem(BaseModel):
    """One labelled class from the model's output distribution."""

    index: int = Field(..., description="Output index of the class")
    label: str = Field(..., description="Human-readable class label")
    confidence: float = Field(..., description="Probability assigned to the class")


class PredictResponse(BaseResponse):
    """Response model for image prediction."""

    label: str = Field(..., description="Label of the highest-probability class")
    index: int = Field(..., description="Output index of the highest-probability class")
    confidence: float = Field(..., description="Probability of the top class")
    predictions: List[PredictionItem] = Field(
        ..., description="Top-k classes ordered by confidence"
    )
