"""Treatment configuration validation against a project's JSON schema."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, best_match

from xpmanager.errors import BadInputError


class TreatmentSchemaValidator:
    """Validates one treatment configuration; a missing schema accepts anything."""

    def validate(self, config: Mapping[str, Any], schema: Mapping[str, Any] | None) -> None:
        if not schema:
            return
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as exc:
            raise BadInputError(f"invalid treatment schema: {exc.message}") from exc

        error = best_match(Draft202012Validator(schema).iter_errors(config))
        if error is not None:
            location = "/".join(str(p) for p in error.absolute_path) or "<root>"
            raise BadInputError(
                f"treatment configuration failed schema validation at {location}: "
                f"{error.message}"
            )
