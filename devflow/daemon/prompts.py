"""Prompt builders for the three oracle calls."""

from datetime import date
from typing import Optional


def single_entry_prompt(text: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"""You are a multilingual assistant for a developer's brain dump app.
Analyze the entry below and return the structured classification.

# ENTRY
\"\"\"
{text}
\"\"\"

# INSTRUCTIONS
1. Language: detect en, hi (Hindi), mr (Marathi), hinglish or mixed.
2. Translation: give an English translation; if already English, repeat it unchanged.
3. Category, in this order of precedence:
   - idea: something the user wants to create or build (apps, features, projects)
   - code_snippet: the entry contains code
   - learning_note: something learned or discovered
   - bug_fix: a bug, error or fix
   - task: a plain errand or to-do that is not development work
   - general: anything else
4. Tags: 3-5 short lowercase keywords.
5. Tasks: resolve relative dates ("tomorrow", "kal", "next Monday") to an absolute
   dueDate (YYYY-MM-DD), infer priority (low, medium, high, urgent) and list action items.
6. Code: give the programming language and codeType (function, class, snippet, config, other).
7. Slang: set containsSlang and list each slang term with its meaning and a confidence.
8. Confidence between 0 and 1, and one sentence of reasoning.

Today is {today.isoformat()}."""


def bulk_prompt(raw_text: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"""You are an expert technical project manager.
Parse a raw "brain dump" of text into structured, categorized entries.

# INPUT TEXT
\"\"\"
{raw_text}
\"\"\"

# INSTRUCTIONS
1. SPLIT INTO SEPARATE ITEMS
   - Split on numbered lists ("1.", "2."), bullet points ("-", "*") and newlines
     separating distinct thoughts.
   - Never combine several items into one entry and never produce a summary entry.
2. FILTER NOISE
   - Ignore logs, stack traces, terminal output and section headers that are not items.
3. ANALYZE EACH ITEM
   - content: the item text without its list marker.
   - Language, translation, category (idea, code_snippet, learning_note, bug_fix, task,
     general), tags (3-5 keywords), due date, priority, slang, confidence and reasoning.
   - isCompleted: true when the item carries a marker such as "- done", "[x]", "fixed",
     "completed", "ho gaya", "kar diya" or "zhala".

Return an object with a "results" array in input order. If the input is only noise,
return an empty "results" array. Today is {today.isoformat()}."""


def expansion_prompt(query: str) -> str:
    return f"""Analyze this search query for a developer's brain dump app and expand it.

Query: "{query}"

Tasks:
1. Expand with synonyms and related technical terms
2. Identify relevant categories (code_snippet, learning_note, idea, bug_fix, task, general)
3. Extract key search terms
4. Determine user intent (find, filter, summarize)
5. Give a time range (YYYY-MM-DD bounds) only if the query mentions one

Examples:
- "react hooks" -> keywords "react", "hooks", "useState", "useEffect", "custom hooks"
- "yesterday's ideas" -> category idea, intent filter, time range of yesterday
- "how to fix" -> categories bug_fix and learning_note

Today is {date.today().isoformat()}."""
