"""
Prompt templates for the generation capability.

Both templates take a single ``data`` variable holding the JSON payload.
Literal braces are doubled so the template engine leaves them alone.
"""

from langchain_core.prompts import ChatPromptTemplate

SYSTEM_PROMPT = """You are an advertising performance analyst for sponsored product campaigns.
Respond with valid JSON only (no markdown fences, no commentary)."""

ANALYSIS_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", """Analyze the following advertising data and provide insights:
{data}

Focus on:
1. Key performance metrics
2. Notable trends
3. Potential areas for improvement
4. Recommendations

Return a JSON array of short insight strings, for example:
["CTR is well above average for branded keywords", "..."]"""),
])

OPTIMIZATION_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", """Based on the following analysis, generate optimization recommendations:
{data}

Return a JSON array of 5 objects. Each object has the fields:
{{"type": "...", "priority": "high|medium|low", "description": "...",
  "impact": "high|medium|low", "difficulty": "high|medium|low",
  "action_items": ["..."]}}
Do not wrap the array in an outer object."""),
])

PROMPTS = {
    "analysis": ANALYSIS_PROMPT,
    "optimization": OPTIMIZATION_PROMPT,
}


def get_prompt(name: str) -> ChatPromptTemplate:
    try:
        return PROMPTS[name]
    except KeyError:
        raise KeyError(f"Prompt template '{name}' not found") from None
