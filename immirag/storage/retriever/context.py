"""
Context Assembler
=================

Renders a RetrievalResult as a delimited knowledge block for a chat model.

Rendering is pure: the same result and language always give the same text.
An empty result renders as "" and callers must then warn the user that the
answer relies on general knowledge (see no_context_notice).
"""

from typing import Any, Dict, List

from immirag.storage.retriever.models import RetrievalResult

DEFAULT_LANGUAGE = "en"

_TEXTS: Dict[str, Dict[str, str]] = {
    "en": {
        "header": (
            "---\n<KNOWLEDGE_BASE>\n"
            "Use the following information to answer the user's question. "
            "If the information is insufficient, explicitly state so.\n"
        ),
        "passages": "## Relevant Information:",
        "entities": "\n## Related Knowledge Graph Entities:",
        "relationships": "\n## Knowledge Graph Connections:",
        "source": "Source",
        "relevance": "Relevance Score",
        "instructions": (
            "\n**Instructions**: Answer the user's question based on the information above "
            "and cite the source numbers you rely on. If the information is not found in the "
            "knowledge base, use your general knowledge but indicate this clearly."
        ),
        "no_context": (
            "Note: no matching information was found in our curated knowledge base, so this "
            "answer is based on general knowledge. Please verify it with official sources."
        ),
    },
    "ar": {
        "header": (
            "---\n<KNOWLEDGE_BASE>\n"
            "استخدم المعلومات التالية للإجابة على سؤال المستخدم. "
            "إذا كانت المعلومات غير كافية، قل ذلك صراحة.\n"
        ),
        "passages": "## المعلومات ذات الصلة:",
        "entities": "\n## الكيانات المعرفية ذات الصلة:",
        "relationships": "\n## الروابط في الرسم المعرفي:",
        "source": "المصدر",
        "relevance": "درجة الصلة",
        "instructions": (
            "\n**تعليمات**: أجب على سؤال المستخدم بناءً على المعلومات أعلاه "
            "واذكر أرقام المصادر التي تعتمد عليها. "
            "إذا لم تجد المعلومة في قاعدة البيانات، استخدم معرفتك العامة مع التنويه بذلك."
        ),
        "no_context": (
            "ملاحظة: لم نجد معلومات مطابقة في قاعدة المعرفة المعتمدة لدينا، لذا تعتمد هذه "
            "الإجابة على المعرفة العامة. يرجى التحقق منها من المصادر الرسمية."
        ),
    },
}


def _texts(language: str) -> Dict[str, str]:
    return _TEXTS.get((language or DEFAULT_LANGUAGE).lower(), _TEXTS[DEFAULT_LANGUAGE])


def relevance_percent(score: float) -> float:
    """
    Normalize a score to percent.

    Scores above 1 are taken as already percent-scaled; scores in [0, 1]
    (vector similarity or reranker relevance) are fractions.
    """
    return score if score > 1 else score * 100


def format_relevance(score: float) -> str:
    return f"{relevance_percent(score):.1f}%"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ", ".join(_format_value(v) for v in value)
    return str(value)


def _type_label(entity_type: str) -> str:
    return entity_type.replace("_", " ").lower()


def build_context(
    result: RetrievalResult,
    language: str = DEFAULT_LANGUAGE,
    include_relationships: bool = False,
) -> str:
    """
    Assemble the knowledge block for a generation prompt.

    Args:
        result: Orchestrator output
        language: "en" or "ar"; other tags render in English
        include_relationships: Also list (entity, relationship) expansion pairs

    Returns:
        The knowledge block, or "" when there are no passages and no entities
    """
    if result.is_empty:
        return ""

    texts = _texts(language)
    parts: List[str] = [texts["header"]]

    if result.passages:
        parts.append(texts["passages"])
        for index, passage in enumerate(result.passages, start=1):
            parts.append(f"\n### {texts['source']} {index}:")
            parts.append("```")
            parts.append(passage.text)
            parts.append("```")
            if passage.source_url:
                parts.append(f"URL: {passage.source_url}")
            parts.append(f"{texts['relevance']}: {format_relevance(passage.similarity)}")

    if result.entities:
        parts.append(texts["entities"])
        for entity in result.entities:
            parts.append(f"\n- **{entity.label}** ({_type_label(entity.entity_type)})")
            props = [
                f"  - {key}: {_format_value(value)}"
                for key, value in entity.properties.items()
                if value is not None
            ]
            if props:
                parts.append("\n".join(props))

    if include_relationships and result.related_entities:
        parts.append(texts["relationships"])
        for pair in result.related_entities:
            relation = _type_label(pair.relationship.relationship_type)
            parts.append(
                f"- {relation} → **{pair.entity.label}** ({_type_label(pair.entity.entity_type)})"
            )

    parts.append("\n</KNOWLEDGE_BASE>\n---")
    parts.append(texts["instructions"])

    return "\n".join(parts)


def no_context_notice(language: str = DEFAULT_LANGUAGE) -> str:
    """Warning to show the end user when build_context returned ""."""
    return _texts(language)["no_context"]
