from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class UploadedImage:
    content: bytes
    content_type: str
    size: int
    filename: str = "image"


class PredictionResponse(BaseModel):
    prediction: int | float | str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str
    inference_base_url: str
