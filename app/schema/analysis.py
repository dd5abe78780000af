"""
Ground-truth image analysis models.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DominantColor(BaseModel):
    """One cluster of the dominant-color palette."""

    model_config = ConfigDict(frozen=True)

    rgb: tuple[int, int, int]
    hex: str
    percentage: float = Field(ge=0.0, le=100.0)
    name: str = ""


class ImageAnalysis(BaseModel):
    """Measured facts about one image at one point in time."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(ge=0)
    height: int = Field(ge=0)
    dpi_estimate: int = Field(ge=0)
    dpi_estimated: bool = True  # no DPI in metadata, dpi_estimate is the default
    format: str = "unknown"
    file_size_bytes: int = Field(ge=0, default=0)
    has_transparency: bool = False
    transparent_pct: float = Field(ge=0.0, le=100.0, default=0.0)
    dominant_colors: tuple[DominantColor, ...] = ()
    unique_color_count: int = Field(ge=0, default=0)
    sharpness_score: float = Field(ge=0.0, le=100.0, default=0.0)
    noise_score: float = Field(ge=0.0, le=100.0, default=0.0)
    is_print_ready: bool = False
    aspect_ratio: str = ""
    print_size_inches: tuple[float, float] = (0.0, 0.0)
    downsampled: bool = False
    failed_measurements: tuple[str, ...] = ()
    confidence: float = Field(ge=0.0, le=100.0, default=0.0)

    @property
    def megapixels(self) -> float:
        return self.width * self.height / 1_000_000

    @property
    def top_color(self) -> DominantColor | None:
        return self.dominant_colors[0] if self.dominant_colors else None

    @classmethod
    def unmeasurable(cls, fmt: str = "unknown", file_size_bytes: int = 0) -> ImageAnalysis:
        """Zeroed analysis for an image that could not be decoded."""
        return cls(
            width=0,
            height=0,
            dpi_estimate=0,
            format=fmt,
            file_size_bytes=file_size_bytes,
            failed_measurements=("decode",),
            confidence=0.0,
        )


class AnalyzeRequest(BaseModel):
    image: str = Field(..., min_length=1, description="Stored image handle, base64 payload or data URL")
