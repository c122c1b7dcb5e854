"""
Property Bag Schemas
====================

Pydantic schemas for the free-form property bags attached to knowledge-graph
entities and relationships.

Each known entity type declares the keys it is expected to carry; unknown keys
are allowed but must hold a scalar or a flat list of scalars, so that the
context assembler can always render them as text. Validation happens once, at
the store boundary, before a property bag reaches the retrieval models.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Set, Type, Union

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

log = structlog.get_logger()

Scalar = Union[str, int, float, bool]
# Integers keep their type (67, not 67.0)
Number = Union[int, float]
PropertyValue = Union[Scalar, List[Scalar], None]


def _is_property_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, int, float, bool)):
        return True
    if isinstance(value, list):
        return all(isinstance(v, (str, int, float, bool)) for v in value)
    return False


class PropertyBag(BaseModel):
    """Generic property bag: any key, scalar or list-of-scalar values."""

    model_config = ConfigDict(extra="allow", frozen=True)

    @model_validator(mode="after")
    def _extra_values_are_flat(self) -> "PropertyBag":
        for key, value in (self.model_extra or {}).items():
            if not _is_property_value(value):
                raise ValueError(
                    f"property '{key}' must be a scalar or a list of scalars, "
                    f"got {type(value).__name__}"
                )
        return self


class ImmigrationProgramProperties(PropertyBag):
    """Visa streams and immigration programs (Express Entry, D7, ...)."""
    country: Optional[str] = None
    category: Optional[str] = None
    min_score: Optional[Number] = None
    processing_time: Optional[str] = None
    official_url: Optional[str] = None


class CountryProperties(PropertyBag):
    iso_code: Optional[str] = None
    region: Optional[str] = None
    official_languages: Optional[List[str]] = None


class DocumentTypeProperties(PropertyBag):
    issuing_authority: Optional[str] = None
    validity_months: Optional[int] = None
    translation_required: Optional[bool] = None


class RequirementProperties(PropertyBag):
    description: Optional[str] = None
    mandatory: Optional[bool] = None
    minimum_value: Optional[Number] = None
    unit: Optional[str] = None


class OrganizationProperties(PropertyBag):
    website: Optional[str] = None
    jurisdiction: Optional[str] = None


PROPERTY_SCHEMAS: Dict[str, Type[PropertyBag]] = {
    "immigration_program": ImmigrationProgramProperties,
    "country": CountryProperties,
    "document_type": DocumentTypeProperties,
    "requirement": RequirementProperties,
    "organization": OrganizationProperties,
}


def schema_for(entity_type: Optional[str]) -> Type[PropertyBag]:
    """Return the schema registered for an entity type (generic if unknown)."""
    if not entity_type:
        return PropertyBag
    return PROPERTY_SCHEMAS.get(entity_type.strip().lower(), PropertyBag)


def _load_bag(raw: Union[str, Mapping[str, Any], None]) -> Dict[str, Any]:
    if raw is None or raw == "":
        return {}

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"property bag is not valid JSON: {e}") from e

    if not isinstance(raw, Mapping):
        raise ValueError(
            f"property bag must be an object, got {type(raw).__name__}"
        )
    return dict(raw)


def _rejected_keys(error: ValidationError, bag: Dict[str, Any], schema: Type[PropertyBag]) -> Set[str]:
    """Keys responsible for a validation error."""
    rejected = {
        err["loc"][0] for err in error.errors()
        if err["loc"] and err["loc"][0] in bag
    }
    # Extra-key violations are raised by the model validator, without a location
    rejected.update(
        key for key, value in bag.items()
        if key not in schema.model_fields and not _is_property_value(value)
    )
    return rejected


def parse_properties(
    raw: Union[str, Mapping[str, Any], None],
    entity_type: Optional[str] = None,
) -> Dict[str, PropertyValue]:
    """
    Validate a raw property bag against the schema of its entity type.

    Args:
        raw: JSON object string (as stored in the graph), mapping, or None
        entity_type: Entity type tag; None or unknown uses the generic schema

    Returns:
        Dict holding only the keys present in the raw bag

    Raises:
        ValueError: Malformed JSON, non-object payload or schema violation
            (pydantic.ValidationError is a ValueError)
    """
    bag = _load_bag(raw)
    model = schema_for(entity_type).model_validate(bag)
    return model.model_dump(exclude_unset=True)


def validate_properties(
    raw: Union[str, Mapping[str, Any], None],
    entity_type: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> Dict[str, PropertyValue]:
    """
    Lenient variant of parse_properties used at the store boundary.

    Keys that violate the schema are logged and dropped, the others are kept.
    A bag that is not a JSON object at all is logged and replaced by {}.
    """
    try:
        bag = _load_bag(raw)
    except ValueError as e:
        log.warning(
            "invalid_property_bag",
            owner_id=owner_id,
            entity_type=entity_type,
            error=str(e),
        )
        return {}

    schema = schema_for(entity_type)
    try:
        return schema.model_validate(bag).model_dump(exclude_unset=True)
    except ValidationError as e:
        rejected = _rejected_keys(e, bag, schema)
        log.warning(
            "invalid_properties_dropped",
            owner_id=owner_id,
            entity_type=entity_type,
            keys=sorted(rejected),
            error=str(e),
        )

    kept = {key: value for key, value in bag.items() if key not in rejected}
    try:
        return schema.model_validate(kept).model_dump(exclude_unset=True)
    except ValidationError as e:
        log.warning(
            "invalid_property_bag",
            owner_id=owner_id,
            entity_type=entity_type,
            error=str(e),
        )
        return {}
