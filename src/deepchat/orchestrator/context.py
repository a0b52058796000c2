"""Formatting of stage outputs into internal context for the next stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .executor import StageOutput

INTERNAL_CONTEXT_MARKER = "---INTERNAL CONTEXT---"


@dataclass(frozen=True)
class ContextTemplate:
    """Preamble, section title and per-entry layout of one context block."""

    preamble: str
    section: str
    ordinal_entry: str = "{index}. {text}"
    labeled_entry: str = '{index}.  **{label}**:\n    "{text}"'


INITIAL_RESPONSES = ContextTemplate(
    preamble=(
        "The following are the initial responses generated by {count} agents. Use these diverse "
        "perspectives as the foundation for the analysis that follows."
    ),
    section="Initial responses",
)

ANALYSIS_RESULTS = ContextTemplate(
    preamble=(
        "Five specialist agents analysed the user's question from different angles, as follows. "
        "Integrate these analyses into the best possible final answer."
    ),
    section="Analysis results",
)


class ContextAggregator:
    """Builds the internal-context text handed from one stage to the next.

    The output only ever travels inside agent payloads; it is never written to
    the conversation log.
    """

    def aggregate(
        self,
        output: StageOutput,
        template: ContextTemplate,
        labels: Optional[Sequence[str]] = None,
    ) -> str:
        """Concatenate results in position order, ordinal-labelled unless ``labels`` is given."""
        if labels is not None and len(labels) != len(output):
            raise ValueError(
                f"Got {len(labels)} labels for {len(output)} results of stage '{output.stage}'"
            )

        entries = []
        for position, result in enumerate(output.results):
            if labels is None:
                entries.append(template.ordinal_entry.format(index=position + 1, text=result.text))
            else:
                entries.append(
                    template.labeled_entry.format(index=position + 1, label=labels[position], text=result.text)
                )

        preamble = template.preamble.format(count=len(output))
        body = "\n\n".join(entries)
        return f"{preamble}\n\n--- {template.section} ---\n{body}\n---"

    def initial_context(self, output: StageOutput) -> str:
        return self.aggregate(output, INITIAL_RESPONSES)

    def analysis_context(self, output: StageOutput, labels: Sequence[str]) -> str:
        return self.aggregate(output, ANALYSIS_RESULTS, labels)

    @staticmethod
    def compose_payload(user_input: str, context: str) -> str:
        """Current-turn payload: the user's words followed by the internal context."""
        return f"{user_input}\n\n{INTERNAL_CONTEXT_MARKER}\n{context}"
