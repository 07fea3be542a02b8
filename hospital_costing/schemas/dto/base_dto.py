from typing import Any
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from hospital_costing.errors import ValidationFailedError


class BaseDTO(BaseModel):
    # 兼容前端传入的 camelCase 字段（monthlyPayroll 等）
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def coerce(cls, payload: Any):
        """
        Accept either an instance or a plain mapping from a collaborator.
        Pydantic errors surface as ValidationFailedError.
        """
        if isinstance(payload, cls):
            return payload
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise ValidationFailedError(
                f"Invalid {cls.__name__}: {e.error_count()} validation error(s): {e}"
            ) from e
