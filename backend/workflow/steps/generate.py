"""
Generation Steps.

Steps that turn tabular data into SQL or JSON output.
"""

import json
from typing import Any, Literal, Optional, Union

from pydantic import AliasChoices, Field

from ..artifact import Artifact
from .base import Step, StepParams
from .registry import register_step


DATABASE_TYPES = ("postgresql", "mysql", "sqlite")


class AutoIncrement(StepParams):
    enabled: bool = False
    column_name: str = Field(default="id", validation_alias=AliasChoices("column_name", "columnName"))
    start_value: int = Field(default=1, validation_alias=AliasChoices("start_value", "startValue"))


class _SqlOptions(StepParams):
    database_type: str = Field(
        default="postgresql", validation_alias=AliasChoices("database_type", "databaseType")
    )
    columns: list[str] = Field(default_factory=list)
    column_mapping: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("column_mapping", "columnMapping")
    )
    auto_increment: Optional[AutoIncrement] = Field(
        default=None, validation_alias=AliasChoices("auto_increment", "autoIncrement")
    )
    remove_duplicates: bool = Field(
        default=False, validation_alias=AliasChoices("remove_duplicates", "removeDuplicates")
    )
    output_filename: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("output_filename", "outputFilename")
    )


class SqlGenerationParams(_SqlOptions):
    table_name: str = Field(default="", validation_alias=AliasChoices("table_name", "tableName"))


class SqlCustomParams(_SqlOptions):
    template: str = ""


def _check_database_type(database_type: str) -> list[str]:
    if not database_type:
        return ["Database type is required"]
    if database_type not in DATABASE_TYPES:
        return [
            f"Unsupported database type: {database_type} "
            f"(expected one of {', '.join(DATABASE_TYPES)})"
        ]
    return []


@register_step("sql-generation")
class SqlGenerationStep(Step):
    """Generate SQL INSERT statements for every row."""

    display_name = "Generate SQL"
    summary = "Generate SQL INSERT statements"
    operation = "sql-generation"
    params_model = SqlGenerationParams

    def check(self, params: SqlGenerationParams) -> list[str]:
        errors = []
        if not params.table_name.strip():
            errors.append("Table name is required")
        errors.extend(_check_database_type(params.database_type))
        return errors

    def output_name(self, params: SqlGenerationParams, artifact: Artifact) -> str:
        return params.output_filename or f"{params.table_name}.sql"


@register_step("sql-custom")
class SqlCustomStep(Step):
    """Render a custom SQL template once per row."""

    display_name = "Custom SQL"
    summary = "Generate SQL from a custom template"
    operation = "sql-custom"
    params_model = SqlCustomParams

    def check(self, params: SqlCustomParams) -> list[str]:
        errors = []
        if not params.template.strip():
            errors.append("SQL template is required")
        errors.extend(_check_database_type(params.database_type))
        return errors

    def output_name(self, params: SqlCustomParams, artifact: Artifact) -> str:
        return params.output_filename or "custom.sql"


class JsonGenerationParams(StepParams):
    columns: list[str] = Field(default_factory=list)
    column_mapping: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("column_mapping", "columnMapping")
    )
    pretty_print: bool = Field(
        default=True, validation_alias=AliasChoices("pretty_print", "prettyPrint")
    )
    null_handling: Literal["include", "exclude", "default"] = Field(
        default="include", validation_alias=AliasChoices("null_handling", "nullHandling")
    )
    array_wrapper: bool = Field(
        default=True, validation_alias=AliasChoices("array_wrapper", "arrayWrapper")
    )
    output_filename: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("output_filename", "outputFilename")
    )


@register_step("json-generation")
class JsonGenerationStep(Step):
    """Convert rows to JSON. Has no required fields."""

    display_name = "Generate JSON"
    summary = "Convert data to JSON format"
    operation = "json-generation"
    params_model = JsonGenerationParams

    def output_name(self, params: JsonGenerationParams, artifact: Artifact) -> str:
        return params.output_filename or "output.json"


class JsonTemplateParams(StepParams):
    template: Union[str, dict[str, Any], list[Any]] = ""
    column_mapping: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("column_mapping", "columnMapping")
    )
    pretty_print: bool = Field(
        default=True, validation_alias=AliasChoices("pretty_print", "prettyPrint")
    )
    aggregation_mode: Literal["array", "single", "nested"] = Field(
        default="array", validation_alias=AliasChoices("aggregation_mode", "aggregationMode")
    )
    output_filename: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("output_filename", "outputFilename")
    )


@register_step("json-template")
class JsonTemplateStep(Step):
    """Render a JSON template once per row."""

    display_name = "JSON Template"
    summary = "Generate JSON from a template"
    operation = "json-template"
    params_model = JsonTemplateParams

    def check(self, params: JsonTemplateParams) -> list[str]:
        template = params.template
        if not template or (isinstance(template, str) and not template.strip()):
            return ["JSON template is required"]
        if isinstance(template, str):
            try:
                json.loads(template)
            except json.JSONDecodeError as e:
                return [f"JSON template is not valid JSON: {e.msg}"]
        return []

    def output_name(self, params: JsonTemplateParams, artifact: Artifact) -> str:
        return params.output_filename or "output.json"
