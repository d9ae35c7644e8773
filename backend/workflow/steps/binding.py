"""
Binding Steps.

Steps that join columns from a second file onto the current artifact.
The second file is given by path in the step config; the current artifact
is always the source side.
"""

from typing import Optional

from pydantic import AliasChoices, Field

from .base import Step, StepParams
from .registry import register_step


class _BindingParams(StepParams):
    bind_file: str = Field(
        default="",
        validation_alias=AliasChoices("bind_file", "bindFile", "binding_file", "bindingFile"),
    )
    output_filename: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("output_filename", "outputFilename")
    )


class BindingSingleParams(_BindingParams):
    comparison_column: str = Field(
        default="", validation_alias=AliasChoices("comparison_column", "comparisonColumn")
    )
    bind_columns: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("bind_columns", "bindColumns")
    )


class BindingMultiParams(_BindingParams):
    comparison_columns: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("comparison_columns", "comparisonColumns"),
    )
    bind_columns: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("bind_columns", "bindColumns")
    )


class FileBindingParams(_BindingParams):
    # binding file column -> column name in the output
    column_mapping: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("column_mapping", "columnMapping")
    )


def _require_bind_file(params: _BindingParams) -> list[str]:
    if not params.bind_file.strip():
        return ["A file to bind from is required"]
    return []


@register_step("binding-single")
class BindingSingleStep(Step):
    """Bind columns from another file matched on one key column."""

    display_name = "Single Key Binding"
    summary = "Bind columns from another file using one key column"
    operation = "binding-single"
    output_prefix = "bound"
    params_model = BindingSingleParams

    def check(self, params: BindingSingleParams) -> list[str]:
        errors = _require_bind_file(params)
        if not params.comparison_column:
            errors.append("Comparison column is required")
        if not params.bind_columns:
            errors.append("At least one column to bind must be selected")
        return errors


@register_step("binding-multi")
class BindingMultiStep(Step):
    """Bind columns from another file matched on several key columns."""

    display_name = "Multi Key Binding"
    summary = "Bind columns from another file using several key columns"
    operation = "binding-multi"
    output_prefix = "bound"
    params_model = BindingMultiParams

    def check(self, params: BindingMultiParams) -> list[str]:
        errors = _require_bind_file(params)
        if not params.comparison_columns:
            errors.append("At least one comparison column is required")
        if not params.bind_columns:
            errors.append("At least one column to bind must be selected")
        return errors


@register_step("file-binding")
class FileBindingStep(Step):
    """Copy mapped columns from another file, row by row."""

    display_name = "File Binding"
    summary = "Bind two files together with a column mapping"
    operation = "file-binding"
    output_prefix = "bound"
    params_model = FileBindingParams

    def check(self, params: FileBindingParams) -> list[str]:
        errors = _require_bind_file(params)
        if not params.column_mapping:
            errors.append("At least one column mapping must be defined")
        return errors
