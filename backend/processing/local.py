"""
Local Processing Service.

Runs every operation in-process with pandas. Table artifacts are used as-is;
file artifacts with a local path are read into a DataFrame first. Useful for
offline runs and for tests, where it stands in for the remote service.
"""

import asyncio
import io
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Optional

import pandas as pd

from workflow.artifact import Artifact

from .base import ProcessingError, ProcessingService

logger = logging.getLogger(__name__)


Handler = Callable[["LocalProcessingService", pd.DataFrame, dict[str, Any], str], Artifact]

_HANDLERS: dict[str, Handler] = {}


def operation(name: str):
    """Register a method as the handler for an operation tag."""
    def decorator(func: Handler) -> Handler:
        _HANDLERS[name] = func
        return func
    return decorator


def _on_text(func: Callable[[str], str]) -> Callable[[Any], Any]:
    """Apply a string function to text values, leaving other values alone."""
    def apply(value: Any) -> Any:
        return func(value) if isinstance(value, str) else value
    return apply


TEXT_NORMALIZERS: dict[str, Callable[[Any], Any]] = {
    "trim": _on_text(str.strip),
    "lowercase": _on_text(str.lower),
    "uppercase": _on_text(str.upper),
    "title_case": _on_text(str.title),
    "normalize_whitespace": _on_text(lambda s: re.sub(r"\s+", " ", s).strip()),
    "remove_special_chars": _on_text(lambda s: re.sub(r"[^\w\s]", "", s)),
    "remove_numbers": _on_text(lambda s: re.sub(r"\d", "", s)),
    "normalize_phone": _on_text(lambda s: re.sub(r"(?!^\+)[^\d]", "", s.strip())),
    "normalize_email": _on_text(lambda s: s.strip().lower()),
}

SQL_IDENTIFIER_QUOTES = {
    "postgresql": ('"', '"'),
    "sqlite": ('"', '"'),
    "mysql": ("`", "`"),
}

PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
SQL_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


# =============================================================================
# Table I/O
# =============================================================================

def read_table(path: Path) -> pd.DataFrame:
    """Read a tabular file into a DataFrame based on its suffix."""
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix == ".tsv":
        return pd.read_csv(path, sep="\t")
    if suffix == ".json":
        return pd.read_json(path)
    if suffix in (".xlsx", ".xls"):
        return pd.read_excel(path)
    raise ProcessingError(f"Unsupported file type: {suffix or path.name}")


def records(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Rows as JSON-native dicts (NaN becomes None, numpy scalars become Python)."""
    return json.loads(df.to_json(orient="records", date_format="iso"))


class LocalProcessingService(ProcessingService):
    """
    In-process implementation of every workflow operation.

    Args:
        base_path: Directory that relative file paths in parameters
            (e.g. a binding file) are resolved against
    """

    name = "local"

    def __init__(self, base_path: Path | str | None = None):
        self.base_path = Path(base_path) if base_path else Path.cwd()

    def supported_operations(self) -> list[str]:
        return list(_HANDLERS.keys())

    async def process(
        self,
        operation: str,
        artifact: Artifact,
        parameters: dict[str, Any],
    ) -> Artifact:
        handler = _HANDLERS.get(operation)
        if handler is None:
            raise ProcessingError(f"Unsupported operation: {operation}", operation=operation)

        df = self.load_table(artifact, operation)
        output_name = parameters.get("output_filename") or f"{operation}-{artifact.name}"
        logger.debug(f"Local {operation} on {artifact.describe()}")

        try:
            return await asyncio.to_thread(handler, self, df, parameters, output_name)
        except ProcessingError as e:
            e.operation = e.operation or operation
            e.details.setdefault("operation", operation)
            raise
        except (KeyError, ValueError, TypeError) as e:
            raise ProcessingError(f"{operation} failed: {e}", operation=operation) from e

    # --- Input ---

    def resolve(self, path: str | Path) -> Path:
        path = Path(path).expanduser()
        return path if path.is_absolute() else self.base_path / path

    def load_table(self, artifact: Artifact, operation: str | None = None) -> pd.DataFrame:
        """Get the artifact's data as a DataFrame (always a copy)."""
        if artifact.is_table:
            return artifact.table.copy()

        if artifact.is_text:
            if artifact.suffix == ".json":
                return pd.read_json(io.StringIO(artifact.text))
            if artifact.suffix in (".csv", ".tsv"):
                sep = "\t" if artifact.suffix == ".tsv" else ","
                return pd.read_csv(io.StringIO(artifact.text), sep=sep)
            raise ProcessingError(
                f"Cannot read {artifact.name} as a table", operation=operation
            )

        if artifact.path is not None:
            path = self.resolve(artifact.path)
            if not path.exists():
                raise ProcessingError(f"Input file not found: {path}", operation=operation)
            return read_table(path)

        raise ProcessingError(
            f"Local processing cannot read remote artifact {artifact.name}",
            operation=operation,
        )

    def load_bind_table(self, parameters: dict[str, Any]) -> pd.DataFrame:
        bind_file = parameters.get("bind_file")
        if not bind_file:
            raise ProcessingError("No file to bind from")
        path = self.resolve(bind_file)
        if not path.exists():
            raise ProcessingError(f"Binding file not found: {path}")
        return read_table(path)

    # --- Table operations ---

    @operation("extraction")
    def _extract(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        columns = params.get("columns") or []
        _require_columns(df, columns)
        result = df[columns]
        if params.get("remove_duplicates"):
            result = result.drop_duplicates()
        return Artifact.from_table(result.reset_index(drop=True), name, columns=len(columns))

    @operation("mapping")
    def _map(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        mapped = pd.DataFrame(index=df.index)
        for target, rule in (params.get("mapping") or {}).items():
            if isinstance(rule, dict):
                source, default = rule.get("source", ""), rule.get("default")
            else:
                source, default = rule, None

            if source and source in df.columns:
                mapped[target] = df[source]
                if default is not None:
                    mapped[target] = mapped[target].fillna(default)
            elif default is not None:
                mapped[target] = default
            else:
                raise ProcessingError(f"Column not found: {source}")
        return Artifact.from_table(mapped.reset_index(drop=True), name, mapping_count=len(mapped.columns))

    @operation("normalization")
    def _normalize(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        rules = params.get("normalizations") or []
        for rule in rules:
            column = rule.get("column_name")
            kind = rule.get("normalization_type")
            _require_columns(df, [column])

            if kind == "remove_duplicates":
                df = df.drop_duplicates(subset=[column])
            elif kind in TEXT_NORMALIZERS:
                df[column] = df[column].map(TEXT_NORMALIZERS[kind])
            else:
                raise ProcessingError(f"Unknown normalization type: {kind}")
        return Artifact.from_table(df.reset_index(drop=True), name, normalization_count=len(rules))

    @operation("search")
    def _search(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        conditions = params.get("conditions") or []
        masks = [
            _condition_mask(df, c.get("column"), c.get("operator"), c.get("value"))
            for c in conditions
        ]

        if not masks:
            mask = pd.Series(True, index=df.index)
        elif params.get("logic", "AND") == "OR":
            mask = pd.concat(masks, axis=1).any(axis=1)
        else:
            mask = pd.concat(masks, axis=1).all(axis=1)

        result = df[mask].reset_index(drop=True)
        return Artifact.from_table(
            result,
            name,
            total_rows=len(df),
            filtered_rows=len(result),
            conditions_applied=len(conditions),
        )

    @operation("csv-convert")
    def _convert(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        return Artifact.from_table(df, name, sheet_name=params.get("sheet_name", "Sheet1"))

    # --- Binding ---

    @operation("binding-single")
    def _bind_single(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        keys = [params.get("comparison_column")]
        return self._bind_on_keys(df, params, keys, name)

    @operation("binding-multi")
    def _bind_multi(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        keys = list(params.get("comparison_columns") or [])
        return self._bind_on_keys(df, params, keys, name)

    def _bind_on_keys(
        self,
        df: pd.DataFrame,
        params: dict[str, Any],
        keys: list[str],
        name: str,
    ) -> Artifact:
        bind = self.load_bind_table(params)
        bind_columns = list(params.get("bind_columns") or [])
        _require_columns(df, keys)
        _require_columns(bind, keys + bind_columns)

        lookup = bind[keys + bind_columns].drop_duplicates(subset=keys, keep="first")
        merged = df.merge(lookup, on=keys, how="left", suffixes=("", "_bound"))
        matched = 0
        if bind_columns:
            # A bound column that clashes with a source column carries the suffix
            bound = bind_columns[0]
            if bound in df.columns and bound not in keys:
                bound = f"{bound}_bound"
            matched = int(merged[bound].notna().sum())
        return Artifact.from_table(merged, name, matched_rows=matched, total_rows=len(df))

    @operation("file-binding")
    def _bind_files(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        bind = self.load_bind_table(params).reset_index(drop=True)
        mapping = params.get("column_mapping") or {}
        _require_columns(bind, list(mapping.keys()))

        result = df.reset_index(drop=True)
        for source, target in mapping.items():
            result[target] = bind[source].reindex(range(len(result))).values
        return Artifact.from_table(result, name, bound_columns=len(mapping))

    # --- SQL ---

    @operation("sql-generation")
    def _generate_sql(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        database = params.get("database_type", "postgresql")
        if database not in SQL_IDENTIFIER_QUOTES:
            raise ProcessingError(f"Unsupported database type: {database}")

        df = _prepare_rows(df, params)
        table = _quote_identifier(params.get("table_name", ""), database)
        columns = ", ".join(_quote_identifier(str(c), database) for c in df.columns)

        statements = []
        for row in records(df):
            values = ", ".join(_sql_literal(v, database) for v in row.values())
            statements.append(f"INSERT INTO {table} ({columns}) VALUES ({values});")

        return Artifact.from_text(
            "\n".join(statements) + ("\n" if statements else ""),
            name,
            media_type="application/sql",
            statements=len(statements),
            table_name=params.get("table_name"),
            database_type=database,
        )

    @operation("sql-custom")
    def _custom_sql(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        template = params.get("template", "")
        database = params.get("database_type", "postgresql")
        if database not in SQL_IDENTIFIER_QUOTES:
            raise ProcessingError(f"Unsupported database type: {database}")

        df = _prepare_rows(df, params)
        known = {str(c) for c in df.columns}

        missing = sorted({m.strip() for m in SQL_PLACEHOLDER.findall(template)} - known)
        if missing:
            raise ProcessingError(f"Template references unknown columns: {', '.join(missing)}")

        lines = []
        for row in records(df):
            lines.append(SQL_PLACEHOLDER.sub(
                lambda m: _sql_literal(row[m.group(1).strip()], database), template
            ))

        return Artifact.from_text(
            "\n".join(lines) + ("\n" if lines else ""),
            name,
            media_type="application/sql",
            statements=len(lines),
            database_type=database,
        )

    # --- JSON ---

    @operation("json-generation")
    def _generate_json(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        columns = params.get("columns") or []
        if columns:
            _require_columns(df, columns)
            df = df[columns]
        mapping = params.get("column_mapping") or {}
        if mapping:
            df = df.rename(columns=mapping)

        rows = records(df)
        null_handling = params.get("null_handling", "include")
        if null_handling == "exclude":
            rows = [{k: v for k, v in row.items() if v is not None} for row in rows]
        elif null_handling == "default":
            rows = [{k: ("" if v is None else v) for k, v in row.items()} for row in rows]

        indent = 2 if params.get("pretty_print", True) else None
        if params.get("array_wrapper", True):
            text = json.dumps(rows, indent=indent, ensure_ascii=False)
        else:
            text = "\n".join(json.dumps(row, ensure_ascii=False) for row in rows)

        return Artifact.from_text(text, name, media_type="application/json", total_records=len(rows))

    @operation("json-template")
    def _template_json(self, df: pd.DataFrame, params: dict[str, Any], name: str) -> Artifact:
        template = params.get("template")
        if isinstance(template, str):
            try:
                template = json.loads(template)
            except json.JSONDecodeError as e:
                raise ProcessingError(f"JSON template is not valid JSON: {e.msg}") from e

        mapping = params.get("column_mapping") or {}
        rendered = [_render_template(template, row, mapping) for row in records(df)]

        mode = params.get("aggregation_mode", "array")
        if mode == "single":
            document: Any = rendered[0] if rendered else None
        elif mode == "nested":
            document = {"data": rendered, "count": len(rendered)}
        else:
            document = rendered

        indent = 2 if params.get("pretty_print", True) else None
        return Artifact.from_text(
            json.dumps(document, indent=indent, ensure_ascii=False),
            name,
            media_type="application/json",
            total_records=len(rendered),
        )


# =============================================================================
# Helpers
# =============================================================================

def _require_columns(df: pd.DataFrame, columns: list[Optional[str]]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        available = ", ".join(str(c) for c in df.columns)
        raise ProcessingError(
            f"Columns not found: {', '.join(str(c) for c in missing)} (available: {available})"
        )


def _numeric(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors="coerce")


def _as_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ProcessingError(f"Expected a number, got {value!r}")


def _condition_mask(df: pd.DataFrame, column: str, operator: str, value: Any) -> pd.Series:
    _require_columns(df, [column])
    series = df[column]
    text = series.astype(str)
    needle = "" if value is None else str(value)

    if operator == "equals":
        if pd.api.types.is_numeric_dtype(series):
            return series == _as_number(value)
        return text == needle
    if operator == "not_equals":
        if pd.api.types.is_numeric_dtype(series):
            return series != _as_number(value)
        return text != needle
    if operator == "contains":
        return text.str.contains(needle, case=False, regex=False) & series.notna()
    if operator == "not_contains":
        return ~text.str.contains(needle, case=False, regex=False) | series.isna()
    if operator == "starts_with":
        return text.str.startswith(needle) & series.notna()
    if operator == "ends_with":
        return text.str.endswith(needle) & series.notna()
    if operator == "greater_than":
        return _numeric(series) > _as_number(value)
    if operator == "less_than":
        return _numeric(series) < _as_number(value)
    if operator == "greater_equal":
        return _numeric(series) >= _as_number(value)
    if operator == "less_equal":
        return _numeric(series) <= _as_number(value)
    if operator == "between":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ProcessingError("'between' needs a [low, high] pair")
        low, high = value
        return _numeric(series).between(_as_number(low), _as_number(high))
    if operator == "in":
        options = value if isinstance(value, (list, tuple)) else [value]
        return text.isin([str(o) for o in options])
    if operator == "is_empty":
        return series.isna() | (text.str.strip() == "")
    if operator == "is_not_empty":
        return series.notna() & (text.str.strip() != "")

    raise ProcessingError(f"Unknown search operator: {operator}")


def _prepare_rows(df: pd.DataFrame, params: dict[str, Any]) -> pd.DataFrame:
    """Apply the shared SQL options: column subset, dedupe, renames, auto id."""
    columns = params.get("columns") or []
    if columns:
        _require_columns(df, columns)
        df = df[columns]
    if params.get("remove_duplicates"):
        df = df.drop_duplicates()
    mapping = params.get("column_mapping") or {}
    if mapping:
        df = df.rename(columns=mapping)

    df = df.reset_index(drop=True)
    auto = params.get("auto_increment") or {}
    if auto.get("enabled"):
        column = auto.get("column_name", "id")
        start = int(auto.get("start_value", 1))
        df.insert(0, column, range(start, start + len(df)))
    return df


def _quote_identifier(name: str, database: str) -> str:
    left, right = SQL_IDENTIFIER_QUOTES[database]
    return f"{left}{name.replace(right, right * 2)}{right}"


def _sql_literal(value: Any, database: str) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        if database == "sqlite":
            return "1" if value else "0"
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


def _render_template(template: Any, row: dict[str, Any], mapping: dict[str, str]) -> Any:
    """Fill {{column}} placeholders in a JSON template with one row's values."""
    def lookup(key: str) -> Any:
        column = mapping.get(key, key)
        if column not in row:
            raise ProcessingError(f"Template references unknown column: {column}")
        return row[column]

    if isinstance(template, dict):
        return {k: _render_template(v, row, mapping) for k, v in template.items()}
    if isinstance(template, list):
        return [_render_template(v, row, mapping) for v in template]
    if isinstance(template, str):
        whole = PLACEHOLDER.fullmatch(template)
        if whole:
            # A lone placeholder keeps the value's JSON type
            return lookup(whole.group(1))
        return PLACEHOLDER.sub(lambda m: "" if lookup(m.group(1)) is None else str(lookup(m.group(1))), template)
    return template
