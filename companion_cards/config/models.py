"""Pydantic models for configuration validation."""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class CardImportConfig(BaseModel):
    """Character card import configuration."""

    max_file_size_bytes: int = Field(default=20 * 1024 * 1024, gt=0)
    candidate_preview_chars: int = Field(
        default=100,
        gt=0,
        description="Characters of each rejected candidate's text written to the log"
    )
    max_text_chunk_bytes: int = Field(
        default=8 * 1024 * 1024,
        gt=0,
        description="Largest inflated zTXt/iTXt text accepted; bigger chunks decode to empty text"
    )
    warn_on_crc_mismatch: bool = Field(
        default=True,
        description="Log a warning when a PNG chunk checksum does not match (the chunk is still read)"
    )
    vocabulary_path: Optional[Path] = Field(
        default=None,
        description="Override for the bundled detail-extraction vocabulary file"
    )
    debug: bool = False

    @field_validator('vocabulary_path')
    @classmethod
    def validate_vocabulary_path(cls, v: Optional[Path]) -> Optional[Path]:
        """Ensure the vocabulary override points at a YAML file."""
        if v is not None and v.suffix.lower() not in ('.yaml', '.yml'):
            raise ValueError('vocabulary_path must point to a .yaml or .yml file')
        return v
