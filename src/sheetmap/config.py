"""Reader settings shared by sheets and mappers."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_COLUMNS_PER_SHEET = 10_000


@dataclass(frozen=True)
class MapperSettings:
    """Limits and behaviour switches for reading sheets.

    Attributes:
        max_columns_per_sheet: Reading a heading wider than this fails.
        skip_blank_lines: Skip rows whose cells are all empty when reading
            rows sequentially.
        validate_models: Construct pydantic targets through validation
            (``model_validate``) rather than ``model_construct``.
    """

    max_columns_per_sheet: int = DEFAULT_MAX_COLUMNS_PER_SHEET
    skip_blank_lines: bool = False
    validate_models: bool = True

    def __post_init__(self) -> None:
        if self.max_columns_per_sheet <= 0:
            raise ValueError("max_columns_per_sheet must be positive")

    @classmethod
    def from_dict(cls, data: dict) -> MapperSettings:
        return cls(
            max_columns_per_sheet=data.get("max_columns_per_sheet", DEFAULT_MAX_COLUMNS_PER_SHEET),
            skip_blank_lines=data.get("skip_blank_lines", False),
            validate_models=data.get("validate_models", True),
        )
