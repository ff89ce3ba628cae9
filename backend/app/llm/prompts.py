"""Prompt construction for grounded answer generation."""

import logging
from collections.abc import Sequence

from backend.app.docs.chunker import truncate_text
from backend.app.models.chat import ChatMode, Language
from backend.app.models.documents import KnowledgeDocument, ScoredDocument

logger = logging.getLogger(__name__)

SYSTEM_PREAMBLE = """You are ASTU SmartDesk, an AI assistant for Adama Science and Technology University (ASTU). Your role is to:

1. Provide accurate information about ASTU services, procedures, and policies
2. Help students navigate university processes (registration, fees, deadlines, etc.)
3. Answer questions about departments, labs, internships, and campus services
4. Be clear, concise, and helpful in your responses
5. Always cite the source documents when providing information
6. If you don't know something, admit it and suggest contacting the relevant office"""

MODE_INSTRUCTIONS: dict[ChatMode, str] = {
    ChatMode.where_to_go: """SPECIAL MODE: "Where Should I Go?"
- Always include the specific office location
- List all required documents the student needs to bring
- Provide step-by-step process instructions
- Include contact information (phone, email, office hours)""",
    ChatMode.deadline: """SPECIAL MODE: "Deadline Assistant"
- Highlight all important dates and deadlines
- Provide clear timeline information
- Warn about upcoming deadlines
- Suggest preparation steps before deadlines""",
}

LANGUAGE_DIRECTIVES: dict[Language, str] = {
    Language.en: "IMPORTANT: Respond in English. Be clear and professional.",
    Language.am: (
        "IMPORTANT: Respond in Amharic (አማርኛ). Provide clear, natural Amharic "
        "translations while maintaining accuracy."
    ),
}

CONTEXT_HEADER = "Relevant Information from ASTU Documents:"


def _metadata_lines(doc: KnowledgeDocument) -> list[str]:
    """Render structured metadata present on a document."""
    meta = doc.metadata
    lines: list[str] = []

    if meta.office_location:
        lines.append(f"   Office Location: {meta.office_location}")
    if meta.required_documents:
        lines.append(f"   Required Documents: {', '.join(meta.required_documents)}")
    if meta.process_steps:
        lines.append(f"   Process Steps: {' → '.join(meta.process_steps)}")
    if meta.deadline_date:
        lines.append(f"   Deadline: {meta.deadline_date.isoformat()}")
    if meta.contact_info and (meta.contact_info.phone or meta.contact_info.email):
        contact = " ".join(p for p in (meta.contact_info.phone, meta.contact_info.email) if p)
        lines.append(f"   Contact: {contact}")

    return lines


def build_context_section(
    context_docs: Sequence[ScoredDocument], *, excerpt_chars: int = 500
) -> str:
    """Render retrieved documents as a numbered context block.

    Returns an empty string when there is no context.
    """
    if not context_docs:
        return ""

    lines = [CONTEXT_HEADER]
    for ordinal, scored in enumerate(context_docs, start=1):
        doc = scored.document
        # Lexical scores are term counts, not fractions
        relevance = ""
        if scored.score and scored.score_kind != "lexical":
            relevance = f" (Relevance: {scored.score * 100:.1f}%)"
        lines.append("")
        lines.append(f"{ordinal}. {doc.title}{relevance}")
        lines.append(truncate_text(doc.content, excerpt_chars))
        lines.extend(_metadata_lines(doc))

    return "\n".join(lines)


def build_prompt(
    question: str,
    context_docs: Sequence[ScoredDocument],
    language: Language = Language.en,
    mode: ChatMode = ChatMode.general,
    *,
    excerpt_chars: int = 500,
) -> str:
    """Assemble the full generation prompt.

    Order: preamble, mode block, language directive, context section,
    question. Modes without instructions and empty context add nothing.
    """
    sections = [SYSTEM_PREAMBLE]

    mode_block = MODE_INSTRUCTIONS.get(mode)
    if mode_block:
        sections.append(mode_block)

    sections.append(LANGUAGE_DIRECTIVES.get(language, LANGUAGE_DIRECTIVES[Language.en]))

    context = build_context_section(context_docs, excerpt_chars=excerpt_chars)
    if context:
        sections.append(context)
    else:
        logger.warning("No context documents provided - response may be generic")

    sections.append(f"Student Question: {question}")
    sections.append("Assistant Response:")

    return "\n\n".join(sections)
