"""
OperationSpec - the declarative contract of a registered operation.

An OperationSpec pairs an operation name with a pydantic input model and a
pydantic result model. The executor reasons about steps only through this
contract; what the operation does is up to the bridge.
"""

from dataclasses import dataclass
from typing import Any, Iterable

import pydantic
from pydantic import AliasChoices, BaseModel

from nukeflow.errors import ValidationError


def _format_pydantic_error(name: str, what: str, exc: pydantic.ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in exc.errors()
    )
    return f"Invalid {what} for '{name}': {details}"


@dataclass(frozen=True)
class OperationSpec:
    """
    Contract for a single operation.

    Attributes:
        name: Operation name as used in batch submissions (e.g. "createNode")
        input_schema: pydantic model validating the operation's arguments
        result_schema: pydantic model validating the bridge output
        side_effect_free: True if the operation only reads host state
        description: Human-readable summary
        category: Grouping used for listing (basic, organization, vfx, project)
    """
    name: str
    input_schema: type[BaseModel]
    result_schema: type[BaseModel]
    side_effect_free: bool = False
    description: str = ""
    category: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("OperationSpec name must not be empty")

    def parameter_names(self) -> dict[str, set[str]]:
        """Map each canonical parameter name to every name it accepts."""
        names: dict[str, set[str]] = {}
        for field_name, info in self.input_schema.model_fields.items():
            accepted = {field_name}
            alias = info.validation_alias
            if isinstance(alias, AliasChoices):
                accepted.update(c for c in alias.choices if isinstance(c, str))
            elif isinstance(alias, str):
                accepted.add(alias)
            if info.alias:
                accepted.add(info.alias)
            names[field_name] = accepted
        return names

    def required_parameters(self) -> list[str]:
        return [
            name for name, info in self.input_schema.model_fields.items()
            if info.is_required()
        ]

    def validate_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Validate literal arguments and return them normalized.

        Defaults are applied and accepted aliases are mapped to the
        canonical parameter names.

        Raises:
            ValidationError: If the arguments do not match the input schema
        """
        try:
            model = self.input_schema.model_validate(arguments)
        except pydantic.ValidationError as e:
            raise ValidationError(_format_pydantic_error(self.name, "arguments", e)) from e
        return model.model_dump()

    def check_argument_names(self, supplied: Iterable[str]) -> None:
        """
        Check argument names only.

        Used at submission time for invocations whose arguments still hold
        symbolic references: every required parameter must be supplied and
        no unknown parameter may appear.

        Raises:
            ValidationError: On a missing or unknown parameter
        """
        supplied = set(supplied)
        names = self.parameter_names()
        accepted = set().union(*names.values())

        unknown = sorted(supplied - accepted)
        if unknown:
            raise ValidationError(
                f"Invalid arguments for '{self.name}': unknown parameter(s) {unknown}"
            )

        missing = [
            param for param in self.required_parameters()
            if not (names[param] & supplied)
        ]
        if missing:
            raise ValidationError(
                f"Invalid arguments for '{self.name}': missing required parameter(s) {missing}"
            )

    def validate_result(self, output: Any) -> dict[str, Any]:
        """Validate a bridge output against the result schema."""
        try:
            model = self.result_schema.model_validate(output)
        except pydantic.ValidationError as e:
            raise ValidationError(_format_pydantic_error(self.name, "result", e)) from e
        return model.model_dump()

    def describe(self) -> dict[str, Any]:
        """Serialize the contract, including JSON schemas, for listing."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "side_effect_free": self.side_effect_free,
            "input_schema": self.input_schema.model_json_schema(),
            "result_schema": self.result_schema.model_json_schema(),
        }
