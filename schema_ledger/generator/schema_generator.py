"""
Schema generator: turn model declarations into CREATE TABLE statements.

`schema-ledger makemigrations` walks a source tree for files named
`models.py`, parses them with the `ast` module (nothing is imported or
executed) and emits one statement per model class:

    class User:                          CREATE TABLE IF NOT EXISTS users (
        id: int                   ->     id INTEGER NOT NULL,
        email: str                       email TEXT NOT NULL,
        nickname: str | None             nickname TEXT
                                         );

A model is any top-level class with at least one annotated field. Field
order follows declaration order; ClassVar annotations are ignored.

Type mapping:
    int -> INTEGER, float -> REAL, str -> TEXT, bool -> INTEGER,
    bytes/bytearray -> BLOB, anything else -> TEXT.
    Optional[T], T | None and Union[T, None] map to T without NOT NULL;
    every other column is NOT NULL.

The generator is stateless. Its output is meant to be reviewed and saved
as a migration file in the migrations directory.
"""

import ast
import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..exceptions import SchemaGenerationError

logger = logging.getLogger(__name__)

MODELS_FILENAME = "models.py"

# Fallback for annotations with no direct SQLite counterpart
DEFAULT_SQL_TYPE = "TEXT"

SQL_TYPES = {
    "int": "INTEGER",
    "float": "REAL",
    "str": "TEXT",
    "bool": "INTEGER",
    "bytes": "BLOB",
    "bytearray": "BLOB",
}


@dataclass
class FieldDeclaration:
    """One column: field name, SQLite type and nullability."""

    name: str
    sql_type: str
    nullable: bool = False

    def to_sql(self) -> str:
        constraint = "" if self.nullable else " NOT NULL"
        return f"{self.name} {self.sql_type}{constraint}"


@dataclass
class ModelDeclaration:
    """A model class found in a models.py file."""

    name: str
    fields: list[FieldDeclaration] = field(default_factory=list)

    @property
    def table_name(self) -> str:
        return f"{self.name.lower()}s"


def find_model_files(root: str | Path) -> list[Path]:
    """
    Recursively find every models.py file under root.

    Returns:
        Sorted list of paths (empty if root isn't a directory)
    """
    root = Path(root)
    if not root.is_dir():
        logger.warning(f"Model source directory not found: {root}")
        return []
    return sorted(p for p in root.rglob(MODELS_FILENAME) if p.is_file())


def extract_models(source: str, filename: str = "<models>") -> list[ModelDeclaration]:
    """
    Parse Python source and return its model declarations.

    Args:
        source: Python source code
        filename: Used in error messages only

    Raises:
        SchemaGenerationError: If the source is not valid Python
    """
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        raise SchemaGenerationError(f"Unable to parse {filename}: {e}") from e

    models = []
    for node in tree.body:
        if not isinstance(node, ast.ClassDef):
            continue

        fields = []
        for statement in node.body:
            if not isinstance(statement, ast.AnnAssign):
                continue
            if not isinstance(statement.target, ast.Name):
                continue
            if _is_classvar(statement.annotation):
                continue
            sql_type, nullable = sql_type_for(statement.annotation)
            fields.append(FieldDeclaration(statement.target.id, sql_type, nullable))

        if fields:
            models.append(ModelDeclaration(name=node.name, fields=fields))

    return models


def sql_type_for(annotation: ast.expr) -> tuple[str, bool]:
    """
    Map a type annotation to (SQLite type, nullable).

    Example:
        >>> sql_type_for(ast.parse("Optional[int]", mode="eval").body)
        ('INTEGER', True)
    """
    # String annotations ("int", "Optional[str]") from forward references
    if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
        try:
            annotation = ast.parse(annotation.value, mode="eval").body
        except SyntaxError:
            return DEFAULT_SQL_TYPE, False

    inner = _optional_inner(annotation)
    if inner is not None:
        sql_type, _ = sql_type_for(inner)
        return sql_type, True

    return SQL_TYPES.get(_type_name(annotation), DEFAULT_SQL_TYPE), False


def model_to_sql(model: ModelDeclaration) -> str:
    """Render a CREATE TABLE IF NOT EXISTS statement for a model."""
    columns = ",\n".join(f.to_sql() for f in model.fields)
    return f"CREATE TABLE IF NOT EXISTS {model.table_name} (\n{columns}\n);"


def generate_schema(root: str | Path) -> list[str]:
    """
    Generate CREATE TABLE statements for every model under root.

    Args:
        root: Source directory to search for models.py files

    Returns:
        One statement per model, in file then declaration order

    Raises:
        SchemaGenerationError: If a models.py file can't be read or parsed
    """
    statements = []
    for path in find_model_files(root):
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SchemaGenerationError(f"Unable to read {path}: {e}") from e

        models = extract_models(source, filename=str(path))
        logger.debug(f"Found {len(models)} models in {path}")
        statements.extend(model_to_sql(model) for model in models)

    return statements


def _type_name(annotation: ast.expr) -> str:
    if isinstance(annotation, ast.Name):
        return annotation.id
    if isinstance(annotation, ast.Attribute):
        return annotation.attr
    if isinstance(annotation, ast.Subscript):
        return _type_name(annotation.value)
    return ""


def _is_none(node: ast.expr) -> bool:
    return (isinstance(node, ast.Constant) and node.value is None) or (
        isinstance(node, ast.Name) and node.id == "None"
    )


def _is_classvar(annotation: ast.expr) -> bool:
    return _type_name(annotation) == "ClassVar"


def _optional_inner(annotation: ast.expr) -> ast.expr | None:
    """Return T for Optional[T], T | None or Union[T, None]; otherwise None."""
    if isinstance(annotation, ast.BinOp) and isinstance(annotation.op, ast.BitOr):
        if _is_none(annotation.right):
            return annotation.left
        if _is_none(annotation.left):
            return annotation.right
        return None

    if not isinstance(annotation, ast.Subscript):
        return None

    wrapper = _type_name(annotation.value)
    if wrapper == "Optional":
        return annotation.slice

    if wrapper == "Union" and isinstance(annotation.slice, ast.Tuple):
        members = [m for m in annotation.slice.elts if not _is_none(m)]
        if len(members) == 1 and len(members) < len(annotation.slice.elts):
            return members[0]

    return None
