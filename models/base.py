"""
Base schemas for import API models.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base for session snapshots and nested import models.

    Strings are trimmed and assignments re-validated, so operator edits
    (manual image URLs, mapping values) are checked the same way as
    values built by the pipeline.
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class RequestSchema(BaseSchema):
    """
    Base for request bodies.

    Unknown keys are rejected, so a misspelled "mappings" is reported
    instead of leaving the session unchanged.
    """
    model_config = ConfigDict(extra="forbid")
