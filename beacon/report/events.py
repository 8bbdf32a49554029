"""Usage events recorded into a report: omnibox interactions, histograms."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class InputType(str, Enum):
    """How the typed omnibox input was classified."""
    INVALID = "invalid"
    UNKNOWN = "unknown"
    REQUESTED_URL = "requested-url"
    URL = "url"
    QUERY = "query"
    FORCED_QUERY = "forced-query"


class ProviderType(str, Enum):
    """Suggestion providers, valued by their provider name."""
    UNKNOWN_PROVIDER = ""
    URL = "HistoryURL"
    HISTORY_CONTENTS = "HistoryContents"
    HISTORY_QUICK = "HistoryQuickProvider"
    SEARCH = "Search"
    KEYWORD = "Keyword"
    BUILTIN = "Builtin"
    SHORTCUTS = "ShortcutsProvider"
    EXTENSION_APPS = "ExtensionApps"


class ResultType(str, Enum):
    UNKNOWN_RESULT_TYPE = ""
    URL_WHAT_YOU_TYPED = "url-what-you-typed"
    HISTORY_URL = "history-url"
    HISTORY_TITLE = "history-title"
    HISTORY_BODY = "history-body"
    HISTORY_KEYWORD = "history-keyword"
    NAVSUGGEST = "navsuggest"
    SEARCH_WHAT_YOU_TYPED = "search-what-you-typed"
    SEARCH_HISTORY = "search-history"
    SEARCH_SUGGEST = "search-suggest"
    SEARCH_OTHER_ENGINE = "search-other-engine"
    EXTENSION_APP = "extension-app"


def provider_from_name(name: str | None) -> ProviderType | None:
    """Map a provider name to its ProviderType.

    None means the suggestion had no provider at all. Names we do not
    know map to UNKNOWN_PROVIDER.
    """
    if name is None:
        return None
    try:
        return ProviderType(name)
    except ValueError:
        logger.debug("Unknown omnibox provider: %s", name)
        return ProviderType.UNKNOWN_PROVIDER


def result_type_from_name(name: str) -> ResultType:
    try:
        return ResultType(name)
    except ValueError:
        logger.debug("Unknown omnibox result type: %s", name)
        return ResultType.UNKNOWN_RESULT_TYPE


def input_type_from_name(name: str) -> InputType:
    try:
        return InputType(name)
    except ValueError:
        logger.debug("Unknown omnibox input type: %s", name)
        return InputType.INVALID


@dataclass(frozen=True)
class OmniboxSuggestion:
    provider: ProviderType | None
    result_type: ResultType
    relevance: int
    starred: bool = False


@dataclass(frozen=True)
class OmniboxEvent:
    """One omnibox navigation. The typed text never leaves this object;
    only its length and whitespace-separated term count are recorded.
    """
    text: str
    input_type: InputType
    selected_index: int
    inline_autocompleted_length: int = 0
    tab_id: int | None = None
    typing_duration_ms: int | None = None
    suggestions: tuple[OmniboxSuggestion, ...] = ()

    @property
    def typed_length(self) -> int:
        return len(self.text)

    @property
    def num_terms(self) -> int:
        return len(self.text.split())

    @classmethod
    def from_dict(cls, data: dict) -> "OmniboxEvent":
        suggestions = tuple(
            OmniboxSuggestion(
                provider=provider_from_name(s.get("provider")),
                result_type=result_type_from_name(s.get("result_type", "")),
                relevance=int(s.get("relevance", 0)),
                starred=bool(s.get("starred", False)),
            )
            for s in data.get("suggestions", [])
        )
        return cls(
            text=data.get("text", ""),
            input_type=input_type_from_name(data.get("input_type", "invalid")),
            selected_index=int(data.get("selected_index", 0)),
            inline_autocompleted_length=int(data.get("inline_autocompleted_length", 0)),
            tab_id=data.get("tab_id"),
            typing_duration_ms=data.get("typing_duration_ms"),
            suggestions=suggestions,
        )


@dataclass(frozen=True)
class HistogramBucket:
    min: int
    max: int
    count: int


@dataclass(frozen=True)
class HistogramSample:
    """Delta of one histogram since the previous report."""
    name: str
    sum: int
    buckets: tuple[HistogramBucket, ...] = field(default_factory=tuple)

    @property
    def total_count(self) -> int:
        return sum(b.count for b in self.buckets)

    @classmethod
    def from_dict(cls, data: dict) -> "HistogramSample":
        return cls(
            name=data["name"],
            sum=int(data.get("sum", 0)),
            buckets=tuple(
                HistogramBucket(min=int(b[0]), max=int(b[1]), count=int(b[2]))
                for b in data.get("buckets", [])
            ),
        )
