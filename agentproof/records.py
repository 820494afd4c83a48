"""
Structural models for untrusted proof data.

Verification validates the *shape* of imported proofs and chain exports with
these models before any cryptographic check. The models are only used to
detect structural defects; hashes are always recomputed from the raw input,
never from a validated (and possibly coerced) copy.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, ValidationError, field_validator

from .util import parse_timestamp


class ProofRecord(BaseModel):
    """Wire shape of a single proof."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    version: StrictStr
    action: StrictStr
    data: Any
    agent_id: StrictStr = Field(alias="agentId")
    previous_hash: Optional[StrictStr] = Field(default=None, alias="previousHash")
    timestamp: StrictStr
    metadata: Optional[Dict[str, Any]] = None
    hash: StrictStr
    signature: StrictStr

    @field_validator("timestamp")
    @classmethod
    def _timestamp_is_iso8601(cls, value: str) -> str:
        parse_timestamp(value)
        return value


class ChainMetadataRecord(BaseModel):
    """Wire shape of chain-level metadata."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    created: Optional[StrictStr] = None
    agent_id: Optional[StrictStr] = Field(default=None, alias="agentId")
    public_key: StrictStr = Field(alias="publicKey")
    partial: StrictBool = False
    start_index: Optional[StrictInt] = Field(default=None, alias="startIndex")


class ChainExportRecord(BaseModel):
    """Wire shape of an exported chain. Proofs are validated one by one."""
    model_config = ConfigDict(extra="allow")

    metadata: ChainMetadataRecord
    proofs: List[Any]


def describe_validation_error(error: ValidationError) -> List[str]:
    """Turn a pydantic ValidationError into one readable line per problem."""
    problems = []
    for item in error.errors():
        field_path = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        if item.get("type") == "missing":
            problems.append(f"Missing required field: {field_path}")
        else:
            problems.append(f"Invalid field {field_path}: {item.get('msg')}")
    return problems


def structural_problems(model: type, raw: Any) -> List[str]:
    """Validate raw input against a model; return problems (empty when well formed)."""
    try:
        model.model_validate(raw)
    except ValidationError as e:
        return describe_validation_error(e)
    return []
