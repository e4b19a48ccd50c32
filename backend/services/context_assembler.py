"""Character-budgeted prompt assembly."""
import logging
from typing import List, Optional, Sequence, Tuple

from models.chunk import RankedChunk
from config import CONTEXT_BUDGET_CHARS, ASSISTANT_LABEL

logger = logging.getLogger(__name__)

KNOWLEDGE_HEADER = "Relevant knowledge:"


def metadata_header(chunk: RankedChunk) -> str:
    """One-line provenance header shown above a snippet."""
    return (
        f"[grade={chunk.grade_level or 'any'} "
        f"subject={chunk.subject or 'any'} "
        f"similarity={chunk.similarity:.2f}]"
    )


class ContextAssembler:
    """
    Packs ranked snippets into a fixed character budget to build the final prompt.

    Only knowledge snippets (and their metadata headers) count against the budget;
    the system preamble and the student's message are always emitted in full.
    """

    def __init__(self, budget_chars: int = CONTEXT_BUDGET_CHARS, assistant_label: str = ASSISTANT_LABEL):
        self.budget_chars = max(budget_chars, 0)
        self.assistant_label = assistant_label

    def assemble(
        self,
        system_preamble: str,
        ranked_chunks: Sequence[RankedChunk],
        user_message: str,
        budget_chars: Optional[int] = None
    ) -> str:
        """Build the prompt text; see assemble_with_stats."""
        prompt, _, _ = self.assemble_with_stats(system_preamble, ranked_chunks, user_message, budget_chars)
        return prompt

    def assemble_with_stats(
        self,
        system_preamble: str,
        ranked_chunks: Sequence[RankedChunk],
        user_message: str,
        budget_chars: Optional[int] = None
    ) -> Tuple[str, int, int]:
        """
        Build the prompt and report how much knowledge was injected.

        Args:
            system_preamble: Agent system prompt
            ranked_chunks: Snippets in ranking order
            user_message: Student message
            budget_chars: Override for the knowledge budget

        Returns:
            (prompt, injected chunk count, characters of knowledge used)
        """
        budget = self.budget_chars if budget_chars is None else max(budget_chars, 0)
        parts: List[str] = [system_preamble, "\n\n"]

        used_chars = 0
        injected = 0
        for chunk in ranked_chunks:
            if not chunk.text:
                continue
            if used_chars >= budget:
                break

            header = metadata_header(chunk)
            if used_chars + len(header) >= budget:
                break

            remaining = budget - used_chars - len(header)
            if remaining <= 0:
                continue
            snippet = chunk.text[:remaining]

            if injected == 0:
                parts.append(f"{KNOWLEDGE_HEADER}\n")
            parts.append(f"{header}\n{snippet}\n")
            used_chars += len(header) + len(snippet)
            injected += 1

        if injected:
            parts.append("\n")
            logger.info(f"Injected {injected} RAG chunk(s) ({used_chars} chars of context)")
        else:
            logger.info("RAG: no context injected")

        parts.append(f"Student: {user_message}\n")
        parts.append(f"{self.assistant_label}: ")
        return "".join(parts), injected, used_chars
