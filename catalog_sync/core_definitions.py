from dataclasses import dataclass, field
from typing import Dict, Optional

from catalog_sync.tset_ops import TSet

# Target language -> substitute source language, e.g. {"zh-Hant": "zh-Hans"}
SourceOverrideMap = Dict[str, str]


@dataclass(frozen=True)
class CoreArgs:
    """Everything a single sync run needs. Built once by the caller, never mutated."""
    src: TSet
    src_lng: str
    src_file: str
    src_format: str
    old_target: Optional[TSet]
    target_lng: str
    service: str
    matcher: str = "none"
    service_config: Optional[str] = None
    prompt: str = ""
    source_override: SourceOverrideMap = field(default_factory=dict)
    # Raw per-key comments of the source file
    comments: Dict[str, str] = field(default_factory=dict)
    base_url: Optional[str] = None
    model_name: str = "gpt-4o-mini"
    max_concurrent_api_calls: int = 5
    requests_per_minute: int = 60
    debug: bool = False


@dataclass
class ChangeSet:
    added: TSet
    updated: TSet
    # Keys sent to a service that came back without a translation
    skipped: TSet
    # None when there was no previous target to compare against
    deleted: Optional[TSet]


@dataclass(frozen=True)
class ServiceInvocation:
    inputs: TSet
    results: TSet


class ServiceInvocationBuilder:
    """
    Accumulates the inputs and results of the normal, copy-original and
    override steps of one run before they are classified.
    """

    def __init__(self):
        self.inputs: TSet = {}
        self.results: TSet = {}
        self.touched = False

    def merge(self, invocation: ServiceInvocation) -> None:
        self.inputs.update(invocation.inputs)
        self.results.update(invocation.results)
        self.touched = True

    def copy_original(self, entries: TSet) -> None:
        for key, value in entries.items():
            self.inputs[key] = value
            self.results[key] = value
        self.touched = True

    def build(self) -> Optional[ServiceInvocation]:
        if not self.touched:
            return None
        return ServiceInvocation(inputs=dict(self.inputs), results=dict(self.results))


@dataclass
class CoreResults:
    change_set: ChangeSet
    service_invocation: Optional[ServiceInvocation]
    new_target: TSet


def parse_source_override(source_override: Optional[str]) -> SourceOverrideMap:
    """
    Parse a source override string into a mapping.

    Example:
        "zh-Hant:zh-Hans,pt-BR:pt-PT" -> {"zh-Hant": "zh-Hans", "pt-BR": "pt-PT"}

    Pairs without both sides are ignored.
    """
    overrides: SourceOverrideMap = {}
    if not source_override:
        return overrides
    for pair in source_override.split(","):
        target, _, source = pair.partition(":")
        target, source = target.strip(), source.strip()
        if target and source:
            overrides[target] = source
    return overrides
