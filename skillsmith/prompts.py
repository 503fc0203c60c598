"""System prompt assembly for chat turns."""

SKILLS_SUMMARY_LIMIT = 10

GUIDELINES = """You are a helpful AI assistant. You can have normal conversations with users and also help them interact with their registered API skills when needed.

**Important Guidelines:**
- Have natural conversations - respond to greetings, questions, and casual chat normally
- ONLY use skills when the user explicitly asks to interact with an API or fetch external data
- Do NOT call skills for greetings like "hello", "hi", or general questions
- Skills are tools for API interactions, not for every response

**When to Use Skills:**
- User asks for weather, data, or information from a specific API
- User explicitly requests to "fetch", "get", "show me", or "retrieve" data
- User mentions a registered API by name (e.g., "check the weather API")

**When NOT to Use Skills:**
- Greetings and casual conversation
- General knowledge questions you can answer directly
- Asking about your capabilities or how things work
- The user is just chatting or making small talk
"""

PERSONAS = {
    "tutor": "Adopt a helpful tutor persona: explain steps patiently and highlight key takeaways.",
    "deployment": "Act as a deployment assistant: prioritise guidance on publishing connectors and managing environments.",
    "troubleshooter": "Act as a troubleshooter: diagnose issues, propose fixes, and suggest verification steps.",
    "technical": (
        "Adopt a technical persona: provide precise implementation detail, reference relevant APIs, "
        "and focus on actionable guidance for developers."
    ),
}

NO_SKILLS_NOTE = (
    "**Note:** User has not registered any API skills yet. "
    "Suggest uploading OpenAPI specs to enable skill execution."
)


def resolve_persona(persona: str | None) -> str:
    return PERSONAS.get(persona or "", "")


def skills_summary(skills, limit: int = SKILLS_SUMMARY_LIMIT) -> str:
    skills = list(skills)
    if not skills:
        return NO_SKILLS_NOTE
    lines = [f"**Your Registered Skills ({len(skills)} total):**"]
    for s in skills[:limit]:
        lines.append(f"- {s.name}: {s.description} [{s.api_name}]")
    if len(skills) > limit:
        lines.append(f"... and {len(skills) - limit} more")
    return "\n".join(lines)


def build_system_prompt(persona: str | None, skills) -> str:
    parts = [GUIDELINES, resolve_persona(persona), skills_summary(skills)]
    return "\n".join(p for p in parts if p)


def format_scenario_summary(results: list[dict] | None) -> str:
    """One line per smoke-suite scenario, for the model to read."""
    if not results:
        return "No saved scenarios were available to run."
    lines = []
    for r in results:
        base = f'Scenario "{r.get("name")}"'
        if r.get("success"):
            status = f"status {r['status']}" if isinstance(r.get("status"), int) else "success"
            duration = f"{r['durationMs']} ms" if isinstance(r.get("durationMs"), int) else "unknown duration"
            lines.append(f"{base} passed ({status}, {duration}).")
        else:
            lines.append(f"{base} failed: {r.get('error') or 'Unknown error'}.")
    return "\n".join(lines)
