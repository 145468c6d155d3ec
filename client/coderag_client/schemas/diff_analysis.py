from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Priority = Literal["high", "medium", "low"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AnalyzeDiffRequest(CamelModel):
    requirement: str = Field(min_length=10)
    role: str | None = None
    include_code_matches: bool | None = None
    include_prd_fragments: bool | None = Field(default=None, alias="includePRDFragments")
    include_summary: bool | None = None
    include_todos: bool | None = None
    code_match_top_k: int | None = Field(default=None, ge=1, le=20)
    prd_top_k: int | None = Field(default=None, ge=1, le=20)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NewFeature(CamelModel):
    name: str
    description: str = ""
    priority: Priority = "medium"


class ModifiedFeature(CamelModel):
    name: str
    description: str = ""
    affected_modules: list[str] = Field(default_factory=list)
    priority: Priority = "medium"


class ImpactScope(CamelModel):
    modules: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    risk_level: Priority = "low"


class RequirementChanges(CamelModel):
    new_features: list[NewFeature] = Field(default_factory=list)
    modified_features: list[ModifiedFeature] = Field(default_factory=list)
    impact_scope: ImpactScope = Field(default_factory=ImpactScope)


class CodeContext(CamelModel):
    file_path: str
    function_name: str | None = None
    class_name: str | None = None
    module_name: str | None = None


class SourceLink(CamelModel):
    url: str
    type: str
    display_text: str


class CodeMatch(CamelModel):
    id: str
    code: str
    context: CodeContext
    similarity: float
    source_link: SourceLink | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CodeMatchResult(CamelModel):
    change_point: str
    matches: list[CodeMatch] = Field(default_factory=list)


class RelatedDoc(CamelModel):
    title: str
    url: str


class CodeRef(CamelModel):
    file_path: str
    url: str
    description: str = ""


class TodoItem(CamelModel):
    id: str
    title: str
    description: str = ""
    priority: Priority = "medium"
    type: Literal["new_feature", "modified_feature"]
    related_docs: list[RelatedDoc] = Field(default_factory=list)
    code_refs: list[CodeRef] = Field(default_factory=list)
    status: Literal["pending", "in_progress", "completed"] = "pending"
    created_at: str | None = None


class DiffAnalysisResult(CamelModel):
    requirement: str
    role: str | None = None
    changes: RequirementChanges = Field(default_factory=RequirementChanges)
    code_recommendations: list[CodeMatchResult] = Field(default_factory=list)
    summary: str = ""
    todos: list[TodoItem] = Field(default_factory=list)
    generated_at: str | None = None
