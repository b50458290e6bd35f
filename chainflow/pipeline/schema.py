"""Pydantic schemas for pipeline documents (API bodies and YAML files)."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..providers.base import EffortLevel, Provider
from .base import DEFAULT_SYSTEM_PROMPT, DEFAULT_USER_PROMPT_TEMPLATE, Edge, Node, Pipeline


class NodeSpec(BaseModel):
    """One node as written by the user. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Unique node id")
    label: str = "New node"
    provider: Provider = Provider.CLAUDE
    model: str = "claude-sonnet-4-20250514"
    system_prompt: str = Field(DEFAULT_SYSTEM_PROMPT, alias="systemPrompt")
    user_prompt_template: str = Field(DEFAULT_USER_PROMPT_TEMPLATE, alias="userPromptTemplate")
    temperature: float = 0.7
    max_tokens: int = Field(4096, alias="maxTokens")
    effort: EffortLevel = EffortLevel.MEDIUM
    optimize_prompt: bool = Field(False, alias="optimizePrompt")

    def to_node(self) -> Node:
        return Node(
            id=self.id,
            label=self.label,
            provider=self.provider,
            model=self.model,
            system_prompt=self.system_prompt,
            user_prompt_template=self.user_prompt_template,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            effort=self.effort,
            optimize_prompt=self.optimize_prompt,
        )


class EdgeSpec(BaseModel):
    source: str
    target: str


class PipelineDocument(BaseModel):
    """A whole pipeline plus the run input, as posted to /api/pipelines/run."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = "pipeline"
    nodes: List[NodeSpec] = Field(default_factory=list)
    edges: List[EdgeSpec] = Field(default_factory=list)
    global_facts: str = Field("", alias="globalFacts")
    user_input: str = Field("", alias="userInput")
    concurrency: Optional[int] = Field(None, ge=1, le=64)

    def to_pipeline(self) -> Pipeline:
        return Pipeline(
            nodes=[n.to_node() for n in self.nodes],
            edges=[Edge(e.source, e.target) for e in self.edges],
            global_facts=self.global_facts,
            name=self.name,
        )


class ProbeModelsRequest(BaseModel):
    base_url: str = Field("", alias="baseUrl")
    api_key: str = Field("", alias="apiKey")
    model: Optional[str] = None


class PipelineRunRequest(PipelineDocument):
    """Body of /api/pipelines/run: a pipeline plus optional per-provider keys and endpoints."""

    api_keys: Dict[Provider, str] = Field(default_factory=dict, alias="apiKeys")
    base_urls: Dict[Provider, str] = Field(default_factory=dict, alias="baseUrls")
