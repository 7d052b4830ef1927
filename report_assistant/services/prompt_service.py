# report_assistant/services/prompt_service.py
"""
Grounding document for SQL generation.

Merges the live schema, the domain knowledge base and the conversation into the
message list sent to the SQL model.
"""

from datetime import date
from typing import Dict, List, Optional

from report_assistant.schemas.pipeline import QueryRequest, SchemaContext
from report_assistant.services.knowledge_base import KnowledgeBase

FEW_SHOT_LIMIT = 6

SYSTEM_INTRO = """You are a financial analyst for RCG Work, a construction project management system.
Your job is to answer user questions about their business data by writing ONE read-only PostgreSQL query.

## RESPONSE STYLE
- Simple questions ("how many", "what is", one person, one project): one direct query, no extra analysis
- Analytical questions ("how are we doing", "compare", "trends"): CTEs are fine, still one statement
- Always call the execute_sql_query function with the query and a brief technical explanation"""

QUERY_RULES = """## QUERY RULES
1. Generate ONLY SELECT queries (no INSERT, UPDATE, DELETE, etc.)
2. Use appropriate JOINs based on foreign key relationships
3. Use aggregations (SUM, COUNT, AVG, GROUP BY) when asking for totals or summaries
4. Always alias columns clearly for readability
5. Limit results to 100 rows unless asking for aggregations
6. For views in the reporting schema, prefix with "reporting." (e.g., reporting.project_financials)
7. Cast enum columns to text when selecting: status::text"""


def render_critical_rules(kb: KnowledgeBase) -> str:
    lines = [f"- {rule.rule}" for rule in kb.critical_rules()]
    return "## CRITICAL DATA RULES\n" + "\n".join(lines)


def render_margin_section(kb: KnowledgeBase) -> str:
    rows = [
        f"| **{term.metric}** | {term.formula} | {term.when_to_use} |"
        for term in kb.margin_terms
    ]
    return (
        "## MARGIN TERMINOLOGY (CRITICAL)\n"
        "| Metric | Formula | When to Use |\n"
        "|--------|---------|-------------|\n"
        + "\n".join(rows)
        + '\n\n"profit" usually means actual_margin, while "margin" usually means current_margin.'
    )


def render_term_mappings(kb: KnowledgeBase) -> str:
    lines = []
    for mapping in kb.term_mappings:
        aliases = ", ".join(mapping.aliases[:3])
        target = mapping.default_kpi or "see disambiguation"
        lines.append(f"- **{mapping.concept}** ({aliases}): Use `{target}`")
    return "## BUSINESS TERM MAPPINGS\n" + "\n".join(lines)


def render_entity_lookups(kb: KnowledgeBase) -> str:
    lines = [f"- **{entity}:** `{source}`" for entity, source in kb.entity_lookups]
    return "## ENTITY LOOKUPS\n" + "\n".join(lines)


def render_name_matching(kb: KnowledgeBase, question: str) -> str:
    lines = ["## NAME MATCHING", "ALWAYS use `ILIKE '%name%'` for name searches. Handle nicknames:"]
    for group in kb.name_variants:
        spelled = ", ".join(name.capitalize() for name in group.names)
        patterns = " OR ".join(f"ILIKE '%{fragment}%'" for fragment in group.match)
        lines.append(f"- {spelled} → {patterns}")

    hints = kb.name_hints(question)
    if hints:
        lines.append("")
        lines.append("Names in THIS question (use these patterns, never exact equality):")
        for hint in hints:
            patterns = " OR ".join(f"ILIKE '%{fragment}%'" for fragment in hint.patterns)
            lines.append(f"- {hint.mentioned} → {patterns}")
    return "\n".join(lines)


def render_examples(kb: KnowledgeBase) -> str:
    blocks = []
    for example in kb.few_shot_examples[:FEW_SHOT_LIMIT]:
        blocks.append(
            f'**Q:** "{example.question}"\n'
            f"**Reasoning:** {example.reasoning}\n"
            f"**SQL:**\n```sql\n{example.sql}\n```"
        )
    return "## EXAMPLES\n\n" + "\n\n".join(blocks)


def render_schema(schema: SchemaContext) -> str:
    tables = "\n".join(
        f"{t.name}: " + ", ".join(f"{c.name} ({c.type})" for c in t.columns)
        for t in schema.tables
    )
    views = "\n".join(
        f"{v.qualified_name}: " + ", ".join(f"{c.name} ({c.type})" for c in v.columns)
        for v in schema.views
    )
    enums = "\n".join(f"{e.name}: {', '.join(e.values)}" for e in schema.enums)
    relationships = "\n".join(
        f"{r.table}.{r.column} → {r.foreign_table}.{r.foreign_column}"
        for r in schema.relationships
    )
    return (
        "## DATABASE SCHEMA (Auto-discovered)\n\n"
        f"### Tables:\n{tables}\n\n"
        f"### Views:\n{views}\n\n"
        f"### Enums:\n{enums}\n\n"
        f"### Foreign Key Relationships:\n{relationships}"
    )


def compose_system_prompt(
    kb: KnowledgeBase,
    schema: SchemaContext,
    question: str,
    today: Optional[date] = None,
) -> str:
    today = today or date.today()
    sections = [
        SYSTEM_INTRO,
        render_critical_rules(kb),
        render_margin_section(kb),
        render_term_mappings(kb),
        render_entity_lookups(kb),
        render_name_matching(kb, question),
    ]
    if kb.time_notes:
        sections.append("## TIME CALCULATIONS\n" + kb.time_notes)
    sections += [
        render_examples(kb),
        render_schema(schema),
        QUERY_RULES,
        f"Today's date is {today.isoformat()}.",
    ]
    return "\n\n".join(sections)


def build_messages(
    request: QueryRequest,
    system_prompt: str,
    history_turns: int = 10,
) -> List[Dict[str, str]]:
    """System prompt, then the most recent `history_turns` messages, then the question."""
    history = list(request.conversation_history)[-history_turns:] if history_turns > 0 else []
    messages = [{"role": "system", "content": system_prompt}]
    messages += [{"role": msg.role, "content": msg.content} for msg in history]
    messages.append({"role": "user", "content": request.natural_language_query})
    return messages
