"""Treatment schema and external rule validation."""

from xpmanager.validation.custom import CustomValidator, ValidationContext
from xpmanager.validation.external import EXPERIMENT_ENTITY, ExternalValidationClient
from xpmanager.validation.schema import TreatmentSchemaValidator

__all__ = [
    "EXPERIMENT_ENTITY",
    "CustomValidator",
    "ExternalValidationClient",
    "TreatmentSchemaValidator",
    "ValidationContext",
]
