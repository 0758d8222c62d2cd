"""Prompt template resolution against a node's recorded inputs."""

from __future__ import annotations

import sys
from dataclasses import dataclass

from langchain_core.prompts import PromptTemplate

from promptsandbox.domain.errors import PromptTemplateError
from promptsandbox.domain.models import NodeInputs


@dataclass(frozen=True, slots=True)
class ResolvedPrompt:
    """A template with every ``{slot}`` substituted."""

    text: str
    variables: tuple[str, ...]
    missing: tuple[str, ...]

    @property
    def complete(self) -> bool:
        return not self.missing

    def __repr__(self) -> str:
        text_repr = repr(self.text)
        if len(text_repr) > 50:
            text_repr = text_repr[:47] + "..."
        return f"ResolvedPrompt({text_repr}, missing={list(self.missing)})"


class PromptResolver:
    """Resolves prompt templates; parsed templates are cached by source text."""

    def __init__(self) -> None:
        self._cache: dict[str, PromptTemplate] = {}

    def parse(self, template: str) -> PromptTemplate:
        """Parse ``template`` (f-string syntax, ``{slot}`` placeholders).

        Raises:
            PromptTemplateError: If the template is malformed
        """
        cached = self._cache.get(template)
        if cached is not None:
            return cached

        try:
            parsed = PromptTemplate.from_template(template)
        except (ValueError, KeyError) as exc:
            raise PromptTemplateError(f"Invalid prompt template: {exc}") from exc

        self._cache[template] = parsed
        return parsed

    def resolve(self, template: str, inputs: NodeInputs) -> ResolvedPrompt:
        """Substitute each referenced slot with its recorded value.

        Slots referenced by the template but absent from ``inputs`` are
        reported in ``missing`` and substituted with the empty string.

        Raises:
            PromptTemplateError: If the template is malformed
        """
        parsed = self.parse(template)
        values = inputs.values()
        variables = tuple(parsed.input_variables)
        missing = tuple(name for name in variables if name not in values)

        try:
            text = parsed.format(**{name: values.get(name, "") for name in variables})
        except (KeyError, IndexError, ValueError) as exc:
            raise PromptTemplateError(f"Cannot format prompt template: {exc}") from exc

        if missing:
            sys.stderr.write(f"[RESOLVER] Unresolved inputs: {list(missing)}\n")
            sys.stderr.flush()
        return ResolvedPrompt(text=text, variables=variables, missing=missing)
