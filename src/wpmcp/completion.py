"""Argument completion for tool calls."""

import re
from typing import Any, Optional

from wpmcp.endpoints import ALLOWED_NAMESPACES, EndpointGateway, namespace_of
from wpmcp.prompts import PROMPTS
from wpmcp.resources import TEMPLATE_INFO, ResourceManager

MAX_ITEM_SUGGESTIONS = 10


def _suggestion(value: str, detail: str) -> dict[str, str]:
    return {"value": value, "label": value, "detail": detail}


class CompletionProvider:
    """Suggests values for a tool argument from a partial input."""

    def __init__(self, endpoints: EndpointGateway, resources: ResourceManager) -> None:
        self.endpoints = endpoints
        self.resources = resources

    def complete(
        self,
        tool: str,
        argument: str,
        partial: str = "",
        context: Optional[dict[str, Any]] = None
    ) -> dict[str, list[dict[str, str]]]:
        partial = partial or ""
        if tool == "wp_call_endpoint" and argument == "endpoint":
            suggestions = self._endpoints(partial)
        elif tool == "resources/read" and argument == "uri":
            suggestions = self._resource_uris(partial)
        elif tool == "prompts/get" and argument == "name":
            suggestions = [
                _suggestion(name, prompt.description)
                for name, prompt in PROMPTS.items()
                if name.startswith(partial)
            ]
        else:
            suggestions = []
        return {"suggestions": suggestions}

    def _endpoints(self, partial: str) -> list[dict[str, str]]:
        suggestions = []
        for path in self.endpoints.store.routes():
            namespace = namespace_of(path)
            if path.startswith(partial) and namespace in ALLOWED_NAMESPACES:
                suggestions.append(_suggestion(path, namespace))
        return suggestions

    def _resource_uris(self, partial: str) -> list[dict[str, str]]:
        prefix = f"{self.resources.scheme}://"
        if partial and not partial.startswith(prefix):
            return []

        suggestions = []
        for item_type in self.resources.type_order:
            candidate = f"{prefix}{item_type}/"
            if candidate.startswith(partial):
                label = TEMPLATE_INFO[item_type][0]
                suggestions.append(_suggestion(candidate, label))

        match = re.match(rf"^{re.escape(prefix)}([^/]+)/", partial)
        if match and match.group(1) in self.resources.type_order:
            item_type = match.group(1)
            for item in self.resources.store.list_items(item_type, 0, MAX_ITEM_SUGGESTIONS):
                uri = self.resources.build_uri(item.type, item.id)
                if uri.startswith(partial):
                    suggestions.append(_suggestion(uri, item.title))
        return suggestions
