"""
Schema generation from model declarations.

Public API:
    - generate_schema: CREATE TABLE statements for every model under a directory
    - extract_models: Parse model classes out of Python source
    - model_to_sql: Render one model as a CREATE TABLE statement
    - sql_type_for: Map a type annotation to a SQLite column type
"""

from schema_ledger.generator.schema_generator import (
    FieldDeclaration,
    ModelDeclaration,
    extract_models,
    find_model_files,
    generate_schema,
    model_to_sql,
    sql_type_for,
)

__all__ = [
    "FieldDeclaration",
    "ModelDeclaration",
    "extract_models",
    "find_model_files",
    "generate_schema",
    "model_to_sql",
    "sql_type_for",
]
