"""
Table Steps.

Steps that reshape tabular data: column extraction, column mapping,
normalization, search/filter and CSV to Excel conversion.
"""

from typing import Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, model_validator

from ..artifact import Artifact
from .base import Step, StepParams
from .registry import register_step


NORMALIZATION_TYPES = {
    "trim": "Remove leading/trailing whitespace",
    "lowercase": "Convert text to lowercase",
    "uppercase": "Convert text to uppercase",
    "title_case": "Convert to title case",
    "normalize_whitespace": "Collapse repeated whitespace",
    "remove_special_chars": "Remove special characters",
    "remove_numbers": "Remove digits",
    "normalize_phone": "Keep digits and a leading +",
    "normalize_email": "Trim and lowercase e-mail addresses",
    "remove_duplicates": "Drop rows with a duplicated value",
}

SEARCH_OPERATORS = {
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "starts_with",
    "ends_with",
    "greater_than",
    "less_than",
    "greater_equal",
    "less_equal",
    "between",
    "in",
    "is_empty",
    "is_not_empty",
}

# Operators that do not take a value
UNARY_OPERATORS = {"is_empty", "is_not_empty"}


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# =============================================================================
# Extraction
# =============================================================================

class ExtractionParams(StepParams):
    columns: list[str] = Field(default_factory=list)
    remove_duplicates: bool = Field(
        default=False, validation_alias=_alias("remove_duplicates", "removeDuplicates")
    )
    output_filename: Optional[str] = Field(
        default=None, validation_alias=_alias("output_filename", "outputFilename")
    )


@register_step("extraction", "extraction-file")
class ExtractionStep(Step):
    """Keep only the selected columns."""

    display_name = "Column Extraction"
    summary = "Extract specific columns from the file"
    operation = "extraction"
    output_prefix = "extracted"
    params_model = ExtractionParams

    def check(self, params: ExtractionParams) -> list[str]:
        errors = []
        if not [c for c in params.columns if c and c.strip()]:
            errors.append("At least one column must be selected")
        elif any(not c or not c.strip() for c in params.columns):
            errors.append("Column names must not be empty")
        return errors


# =============================================================================
# Mapping
# =============================================================================

class MappingRule(BaseModel):
    source: str = ""
    default: Optional[Any] = None


class MappingParams(StepParams):
    # target column -> source column (or rule with a default)
    mapping: dict[str, Union[str, MappingRule]] = Field(default_factory=dict)
    output_filename: Optional[str] = Field(
        default=None, validation_alias=_alias("output_filename", "outputFilename")
    )


@register_step("mapping")
class MappingStep(Step):
    """Rename and map columns to new names."""

    display_name = "Column Mapping"
    summary = "Rename and map columns to new names"
    operation = "mapping"
    output_prefix = "mapped"
    params_model = MappingParams

    def check(self, params: MappingParams) -> list[str]:
        errors = []
        if not params.mapping:
            errors.append("At least one column mapping must be defined")
            return errors
        for target, rule in params.mapping.items():
            source = rule if isinstance(rule, str) else rule.source
            has_default = not isinstance(rule, str) and rule.default is not None
            if not target or (not source and not has_default):
                errors.append("Each mapping must have a target and a source column or default")
                break
        return errors


# =============================================================================
# Normalization
# =============================================================================

class NormalizationRule(BaseModel):
    column_name: str = Field(default="", validation_alias=_alias("column_name", "column"))
    normalization_type: str = Field(
        default="", validation_alias=_alias("normalization_type", "type")
    )
    parameters: dict[str, Any] = Field(default_factory=dict)


class NormalizationParams(StepParams):
    normalizations: list[NormalizationRule] = Field(default_factory=list)
    output_filename: Optional[str] = Field(
        default=None, validation_alias=_alias("output_filename", "outputFilename")
    )

    @model_validator(mode="before")
    @classmethod
    def _single_rule_shorthand(cls, data: Any) -> Any:
        # Accept {"column": "a", "type": "uppercase"} for a one-rule step
        if isinstance(data, dict) and "normalizations" not in data and (
            "column" in data or "type" in data
        ):
            data = dict(data)
            data["normalizations"] = [{
                "column_name": data.pop("column", ""),
                "normalization_type": data.pop("type", ""),
                "parameters": data.pop("parameters", {}),
            }]
        return data


@register_step("normalization")
class NormalizationStep(Step):
    """Apply normalization rules to columns."""

    display_name = "Data Normalization"
    summary = "Apply normalization rules to columns"
    operation = "normalization"
    output_prefix = "normalized"
    params_model = NormalizationParams

    def check(self, params: NormalizationParams) -> list[str]:
        errors = []
        if not params.normalizations:
            errors.append("At least one normalization rule must be defined")
            return errors
        for rule in params.normalizations:
            if not rule.column_name or not rule.normalization_type:
                errors.append("Each normalization must have a column name and type")
                break
        return errors


# =============================================================================
# Search
# =============================================================================

class SearchCondition(BaseModel):
    column: str = ""
    operator: str = ""
    value: Any = None


class SearchParams(StepParams):
    conditions: list[SearchCondition] = Field(default_factory=list)
    logic: Literal["AND", "OR"] = "AND"
    output_format: Literal["xlsx", "csv", "json"] = Field(
        default="xlsx", validation_alias=_alias("output_format", "outputFormat")
    )
    output_filename: Optional[str] = Field(
        default=None, validation_alias=_alias("output_filename", "outputFilename")
    )


@register_step("search")
class SearchStep(Step):
    """Filter rows that match a set of conditions."""

    display_name = "Search and Filter"
    summary = "Filter rows based on conditions"
    operation = "search"
    output_prefix = "filtered"
    params_model = SearchParams

    def check(self, params: SearchParams) -> list[str]:
        errors = []
        if not params.conditions:
            errors.append("At least one search condition must be defined")
            return errors
        for condition in params.conditions:
            if not condition.column or not condition.operator:
                errors.append("Each condition must have a column and operator")
                break
        for condition in params.conditions:
            if condition.operator and condition.operator not in SEARCH_OPERATORS:
                errors.append(f"Unknown search operator: {condition.operator}")
        return errors

    def output_name(self, params: SearchParams, artifact: Artifact) -> str:
        if params.output_filename:
            return params.output_filename
        stem = artifact.name.rsplit(".", 1)[0]
        return f"filtered-{stem}.{params.output_format}"


# =============================================================================
# CSV conversion
# =============================================================================

class CsvConvertParams(StepParams):
    sheet_name: str = Field(default="Sheet1", validation_alias=_alias("sheet_name", "sheetName"))
    output_filename: Optional[str] = Field(
        default=None, validation_alias=_alias("output_filename", "outputFilename")
    )


@register_step("csv-convert")
class CsvConvertStep(Step):
    """Convert a CSV file to an Excel workbook."""

    display_name = "CSV to Excel"
    summary = "Convert a CSV file to Excel format"
    operation = "csv-convert"
    params_model = CsvConvertParams

    def output_name(self, params: CsvConvertParams, artifact: Artifact) -> str:
        if params.output_filename:
            return params.output_filename
        return f"{artifact.name.rsplit('.', 1)[0]}.xlsx"
