"""
Base Schema Classes for Pydantic Models

Response schemas serialize with camelCase aliases because the reseller
dashboard consumes the forecast with the same field names it always has
(`productId`, `avgDailySales`, ...). Python code uses the snake_case names.

RULE: All response schemas MUST inherit from BaseResponseSchema.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas.

    Features:
    - camelCase aliases in JSON output
    - Population by field name or alias
    - Enables from_attributes for ORM compatibility

    Usage:
        class SummaryResponse(BaseResponseSchema):
            total_products: int   # serialized as "totalProducts"
    """
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class BaseRecordSchema(BaseModel):
    """
    Base class for input snapshots read from the data sources.

    Records are frozen: the forecast treats every read as an immutable
    snapshot, and unknown columns are ignored for forward compatibility.
    """
    model_config = ConfigDict(
        frozen=True,
        extra='ignore',
    )
