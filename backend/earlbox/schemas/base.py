"""Base schema classes.

The RPC wire format is snake_case, so fields are serialized by name.
"""
from pydantic import BaseModel


class RequestModel(BaseModel):
    """Base for request schemas. Unknown fields are ignored."""
    model_config = {
        "extra": "ignore",
        "protected_namespaces": (),
    }


class ORMModel(BaseModel):
    """Base for response schemas read from SQLAlchemy objects."""
    model_config = {
        "from_attributes": True,
        "protected_namespaces": (),
    }
